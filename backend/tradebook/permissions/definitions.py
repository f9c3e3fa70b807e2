# Overview: Every grantable capability, organized by section.
# Each capability is (section, child); child is None for the section switch itself.

from __future__ import annotations

from typing import NamedTuple, Optional

from .sections import Section


class Capability(NamedTuple):
    section: str
    child: Optional[str] = None

    @property
    def key(self) -> str:
        """Wire form: "vendors" or "vendors.payables"."""
        return self.section if self.child is None else f"{self.section}.{self.child}"

    @property
    def is_section(self) -> bool:
        return self.child is None

    def __str__(self) -> str:
        return self.key


# -- SECTION CHILDREN --

SECTION_CHILDREN: dict[str, tuple[str, ...]] = {
    Section.DASHBOARD: (),
    Section.FAKE_INVOICES: (),
    Section.INVENTORY: ("manage",),
    Section.FINANCIAL: ("salesReport", "balanceSheet"),
    Section.CUSTOMERS: ("list", "invoices", "generateInvoice", "payables"),
    Section.VENDORS: ("list", "invoices", "generate", "payables"),
    Section.BROKERS: ("list", "payables"),
    Section.COMMISSIONERS: ("list", "addSheet", "sheets"),
    Section.SETTINGS: ("account", "users"),
    Section.ACTIVITY_LOG: (),
}


def _build() -> tuple[Capability, ...]:
    caps: list[Capability] = []
    for section, children in SECTION_CHILDREN.items():
        caps.append(Capability(section))
        caps.extend(Capability(section, child) for child in children)
    return tuple(caps)


ALL_CAPABILITIES: tuple[Capability, ...] = _build()
CAPABILITIES_BY_KEY: dict[str, Capability] = {cap.key: cap for cap in ALL_CAPABILITIES}


# Shorthands used by route decorators
DASHBOARD = Capability(Section.DASHBOARD)
INVENTORY = Capability(Section.INVENTORY)
INVENTORY_MANAGE = Capability(Section.INVENTORY, "manage")
SALES_REPORT = Capability(Section.FINANCIAL, "salesReport")
BALANCE_SHEET = Capability(Section.FINANCIAL, "balanceSheet")
CUSTOMERS_LIST = Capability(Section.CUSTOMERS, "list")
CUSTOMER_INVOICES = Capability(Section.CUSTOMERS, "invoices")
CUSTOMER_GENERATE = Capability(Section.CUSTOMERS, "generateInvoice")
CUSTOMER_PAYABLES = Capability(Section.CUSTOMERS, "payables")
VENDORS_LIST = Capability(Section.VENDORS, "list")
VENDOR_INVOICES = Capability(Section.VENDORS, "invoices")
VENDOR_GENERATE = Capability(Section.VENDORS, "generate")
VENDOR_PAYABLES = Capability(Section.VENDORS, "payables")
BROKERS_LIST = Capability(Section.BROKERS, "list")
BROKER_PAYABLES = Capability(Section.BROKERS, "payables")
COMMISSIONERS_LIST = Capability(Section.COMMISSIONERS, "list")
COMMISSIONER_ADD_SHEET = Capability(Section.COMMISSIONERS, "addSheet")
COMMISSIONER_SHEETS = Capability(Section.COMMISSIONERS, "sheets")
SETTINGS_ACCOUNT = Capability(Section.SETTINGS, "account")
SETTINGS_USERS = Capability(Section.SETTINGS, "users")
ACTIVITY_LOG = Capability(Section.ACTIVITY_LOG)
