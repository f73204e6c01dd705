"""Tests for the review / import / link workflow."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.config import MatchThresholds
from app.core.exceptions import RemoteApiError
from app.models import Account, XeroAccountMapping
from app.services.account_mapping_service import AccountMappingStore
from app.services.xero_client import BankStatementLine
from app.services.xero_review_service import XeroReviewService
from tests.conftest import NOW
from tests.fakes import make_xero_account


@pytest.fixture
def review_service(oauth_service):
    return XeroReviewService(oauth_service)


def test_review_classifies_and_sorts(db, principal, connection, make_account, fake_client, review_service):
    everyday = make_account("Everyday Account", account_number="12345678")
    card = make_account("Smith CC", account_type="credit")
    linked = make_account("Offset")
    fake_client.accounts = [
        make_xero_account("acc-none", "Petty Cash Tin"),
        make_xero_account("acc-card", "Smith Family Credit Card", account_type="CREDITCARD"),
        make_xero_account("acc-everyday", "Everyday Account", number="1234-5678"),
        make_xero_account("acc-linked", "Home Loan Offset"),
    ]
    AccountMappingStore(db).link(connection.id, "acc-linked", linked.id, fake_client.accounts[3])
    db.commit()

    result = review_service.review_accounts(connection.id, db, principal)

    assert result.success is True
    assert [(c.xero_account.account_id, c.status, c.confidence) for c in result.comparisons] == [
        ("acc-linked", "matched", 100),
        ("acc-everyday", "suggested", 95),
        ("acc-card", "suggested", 70),
        ("acc-none", "no_match", 0),
    ]
    assert result.comparisons[0].reason == "Manually linked"
    assert result.comparisons[1].local_account.id == str(everyday.id)
    assert result.comparisons[2].local_account.id == str(card.id)
    assert (result.matched_count, result.suggested_count, result.unmatched_count) == (1, 2, 1)


def test_review_reports_token_failure(db, principal, connection, fake_client, review_service):
    connection.token_expires_at = NOW + timedelta(minutes=1)
    db.commit()
    fake_client.refresh_error = RemoteApiError("Token request (refresh_token) failed", 400)

    result = review_service.review_accounts(connection.id, db, principal)

    assert result.success is False
    assert "reconnect" in result.error


def test_review_unknown_connection(db, principal, review_service):
    result = review_service.review_accounts(uuid.uuid4(), db, principal)

    assert result.success is False
    assert result.error == "Connection not found"


def test_import_account_as_local(db, principal, connection, fake_client, review_service):
    fake_client.accounts = [
        make_xero_account("acc-card", "Smith Visa", number="4111", account_type="CREDITCARD", code="800", currency="NZD"),
    ]

    result = review_service.import_account_as_local(connection.id, "acc-card", db, principal)

    assert result.success is True
    account = db.query(Account).filter(Account.id == uuid.UUID(result.local_account_id)).one()
    assert account.name == "Smith Visa"
    assert account.account_type == "credit"
    assert account.account_number == "4111"
    assert account.currency == "NZD"
    assert account.institution == "Smith Family Trust"
    assert account.notes == "Imported from Xero (800)"
    mapping = db.query(XeroAccountMapping).one()
    assert mapping.local_account_id == account.id
    assert mapping.is_sync_enabled is True
    assert str(mapping.id) == result.mapping_id


def test_import_defaults_currency(db, principal, connection, fake_client, review_service):
    xero_account = make_xero_account("acc-1", "Everyday")
    xero_account["CurrencyCode"] = None
    fake_client.accounts = [xero_account]

    result = review_service.import_account_as_local(connection.id, "acc-1", db, principal)

    account = db.query(Account).filter(Account.id == uuid.UUID(result.local_account_id)).one()
    assert account.currency == "AUD"
    assert account.account_type == "bank"


def test_import_updates_discovered_mapping(db, principal, connection, fake_client, review_service):
    fake_client.accounts = [make_xero_account("acc-1", "Everyday")]
    store = AccountMappingStore(db)
    discovered = store.upsert_discovered(connection.id, fake_client.accounts[0])
    store.update(discovered, None, False)
    db.commit()

    result = review_service.import_account_as_local(connection.id, "acc-1", db, principal)

    mapping = db.query(XeroAccountMapping).one()
    assert mapping.id == discovered.id
    assert str(mapping.local_account_id) == result.local_account_id
    assert mapping.is_sync_enabled is True


def test_import_unknown_xero_account(db, principal, connection, fake_client, review_service):
    result = review_service.import_account_as_local(connection.id, "missing", db, principal)

    assert result.success is False
    assert result.error == "Xero account not found"


def test_import_duplicate_name_fails_cleanly(db, principal, connection, make_account, fake_client, review_service):
    make_account("Everyday")
    fake_client.accounts = [make_xero_account("acc-1", "Everyday")]

    result = review_service.import_account_as_local(connection.id, "acc-1", db, principal)

    assert result.success is False
    assert result.error.startswith("Failed to create account")
    assert db.query(Account).count() == 1
    assert db.query(XeroAccountMapping).count() == 0


def test_import_mapping_failure_leaves_no_account(db, principal, connection, fake_client, review_service, monkeypatch):
    fake_client.accounts = [make_xero_account("acc-1", "Everyday")]

    def fail_link(self, *args, **kwargs):
        raise SQLAlchemyError("mapping write failed")

    monkeypatch.setattr(AccountMappingStore, "link", fail_link)

    result = review_service.import_account_as_local(connection.id, "acc-1", db, principal)

    assert result.success is False
    assert result.local_account_id is None
    assert result.error.startswith("Failed to link imported account")
    assert db.query(Account).count() == 0
    assert db.query(XeroAccountMapping).count() == 0

    # Still importable once the mapping write works again
    monkeypatch.undo()
    review = review_service.review_accounts(connection.id, db, principal)
    assert review.unmatched_count == 1


def test_import_all_unmatched_with_one_failure(db, principal, connection, fake_client, review_service):
    """Three unmatched accounts, one collides on the unique account name."""
    fake_client.accounts = [
        make_xero_account("acc-1", "Business Cheque"),
        make_xero_account("acc-2", "Business Cheque"),
        make_xero_account("acc-3", "Term Deposit"),
    ]

    result = review_service.import_all_unmatched(connection.id, db, principal)

    assert result.success is True
    assert result.imported_count == 2
    assert result.failed_count == 1
    assert result.error.startswith("Business Cheque: ")
    assert db.query(Account).count() == 2


def test_import_all_unmatched_skips_suggested(db, principal, connection, make_account, fake_client, review_service):
    make_account("Everyday Account")
    fake_client.accounts = [
        make_xero_account("acc-1", "Everyday Account"),
        make_xero_account("acc-2", "Term Deposit"),
    ]

    result = review_service.import_all_unmatched(connection.id, db, principal)

    assert result.success is True
    assert result.imported_count == 1
    assert result.error is None
    assert {a.name for a in db.query(Account).all()} == {"Everyday Account", "Term Deposit"}


def test_import_all_unmatched_all_failing(db, principal, connection, make_account, fake_client, review_service):
    make_account("Visa")
    fake_client.accounts = [make_xero_account("acc-1", "Visa")]
    # Force the only account to no_match so the import collides
    review_service.thresholds = MatchThresholds(actionable=101)

    result = review_service.import_all_unmatched(connection.id, db, principal)

    assert result.success is False
    assert result.imported_count == 0
    assert result.error.startswith("Visa: ")


def test_link_to_local_account_creates_mapping(db, principal, connection, make_account, fake_client, review_service):
    account = make_account("Everyday")
    fake_client.accounts = [make_xero_account("acc-1", "Everyday Account", code="090")]

    result = review_service.link_to_local_account(connection.id, "acc-1", account.id, db, principal)

    assert result.success is True
    mapping = db.query(XeroAccountMapping).one()
    assert mapping.local_account_id == account.id
    assert mapping.xero_account_code == "090"


def test_link_to_local_account_updates_existing(db, principal, connection, make_account, fake_client, review_service):
    account = make_account("Everyday")
    store = AccountMappingStore(db)
    mapping = store.upsert_discovered(connection.id, make_xero_account("acc-1", "Everyday"))
    store.update(mapping, None, False)
    db.commit()

    result = review_service.link_to_local_account(connection.id, "acc-1", account.id, db, principal)

    assert result.success is True
    db.refresh(mapping)
    assert mapping.local_account_id == account.id
    assert mapping.is_sync_enabled is True


def test_link_requires_own_local_account(db, principal, connection, review_service):
    result = review_service.link_to_local_account(connection.id, "acc-1", uuid.uuid4(), db, principal)

    assert result.success is False
    assert result.error == "Local account not found"


def test_discover_accounts_auto_links_confident_matches(db, principal, connection, make_account, fake_client, review_service):
    everyday = make_account("Everyday Account")
    make_account("Mortgage")
    fake_client.accounts = [
        make_xero_account("acc-1", "Everyday Account"),
        make_xero_account("acc-2", "Savngs"),
        make_xero_account("acc-3", "Petty Cash Tin"),
    ]
    make_account("Savings")

    mappings = review_service.discover_accounts(connection, db, principal, auto_link=True)

    by_id = {m.xero_account_id: m for m in mappings}
    assert by_id["acc-1"].local_account_id == everyday.id
    # 69% is below the auto-link threshold
    assert by_id["acc-2"].local_account_id is None
    assert by_id["acc-3"].local_account_id is None
    assert all(m.is_sync_enabled for m in mappings)


def test_discover_accounts_does_not_link_one_account_twice(db, principal, connection, make_account, fake_client, review_service):
    everyday = make_account("Everyday Account")
    fake_client.accounts = [
        make_xero_account("acc-1", "Everyday Account"),
        make_xero_account("acc-2", "Everyday Account"),
    ]

    mappings = review_service.discover_accounts(connection, db, principal, auto_link=True)

    assert [m.local_account_id for m in mappings] == [everyday.id, None]


def test_discover_without_auto_link(db, principal, connection, make_account, fake_client, review_service):
    make_account("Everyday Account")
    fake_client.accounts = [make_xero_account("acc-1", "Everyday Account")]

    mappings = review_service.discover_accounts(connection, db, principal)

    assert mappings[0].local_account_id is None


def test_statement_lines(db, principal, connection, fake_client, review_service):
    fake_client.statement_lines = [
        BankStatementLine("2026-01-05", "Coffee", "", True, "Bank feed", -4.5, 995.5),
    ]

    lines = review_service.get_statement_lines(connection.id, "acc-1", db, principal)

    assert lines[0].description == "Coffee"
