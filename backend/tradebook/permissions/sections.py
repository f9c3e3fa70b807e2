# Overview: Permission section constants (top-level dashboard areas).


class Section:
    """Top-level areas of the back office; each may own child capabilities."""
    DASHBOARD = "dashboard"
    FAKE_INVOICES = "fakeInvoices"
    INVENTORY = "inventory"
    FINANCIAL = "financial"
    CUSTOMERS = "customers"
    VENDORS = "vendors"
    BROKERS = "brokers"
    COMMISSIONERS = "commissioners"
    SETTINGS = "settings"
    ACTIVITY_LOG = "activityLog"
