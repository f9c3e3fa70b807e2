"""
Tests for the retry wrapper every write service goes through.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from tradebook.exceptions import ConflictError, NotFound
from tradebook.extensions import db
from tradebook.models import Item
from tradebook.services.concurrency import run_with_retry


def test_retries_until_success(db_session):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("version moved")
        return "saved"

    assert run_with_retry(_op, backoff_base=0) == "saved"
    assert len(calls) == 3


def test_exhausted_retries_become_conflict(db_session):
    def _op():
        raise OperationalError("UPDATE items", {}, Exception("database is locked"))

    with pytest.raises(ConflictError):
        run_with_retry(_op, attempts=2, backoff_base=0)


def test_domain_error_is_not_retried_and_rolls_back(db_session):
    calls = []

    def _op():
        calls.append(1)
        db.session.add(Item(item_id=12345, item_name="Ghost"))
        db.session.flush()
        raise NotFound("item", 999)

    with pytest.raises(NotFound):
        run_with_retry(_op, backoff_base=0)
    assert len(calls) == 1
    assert db.session.query(Item).filter_by(item_id=12345).first() is None
