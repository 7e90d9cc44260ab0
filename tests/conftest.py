"""
Shared fixtures.

Ledger tests run against both storage backends: the in-memory one and
SQLite on a temporary file.
"""

import pytest

from familybudget.audit import AuditLogger
from familybudget.config import LedgerSettings
from familybudget.models.ledger import (
    Account,
    AccountType,
    Category,
    CategoryType,
    Identity,
    MemberRole,
)
from familybudget.orchestrator import LedgerComponents
from familybudget.services.storage import (
    MemoryAuditStorage,
    MemoryLedgerStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)

FAMILY_ID = "family-1"
OTHER_FAMILY_ID = "family-2"


@pytest.fixture
def identity() -> Identity:
    return Identity(user_id="user-1", family_id=FAMILY_ID, role=MemberRole.OWNER)


@pytest.fixture
def partner() -> Identity:
    """Second member of the same family."""
    return Identity(user_id="user-2", family_id=FAMILY_ID)


@pytest.fixture
def outsider() -> Identity:
    return Identity(user_id="user-9", family_id=OTHER_FAMILY_ID)


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        default_currency="RUB",
        supported_currencies="RUB,USD,EUR",
        storage_retry_attempts=3,
        storage_retry_max_wait_seconds=0.0,
    )


@pytest.fixture
async def sqlite_database(tmp_path) -> SQLiteDatabase:
    database = SQLiteDatabase(str(tmp_path / "ledger.db"))
    await database.initialize()
    return database


@pytest.fixture(params=["memory", "sqlite"])
async def storage(request, tmp_path):
    """Each ledger test runs once per backend."""
    if request.param == "memory":
        return MemoryLedgerStorage()
    backend = SQLiteLedgerStorage(SQLiteDatabase(str(tmp_path / "ledger.db")))
    await backend.initialize()
    return backend


@pytest.fixture
def audit_storage() -> MemoryAuditStorage:
    return MemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def components(storage, audit_logger, ledger_settings) -> LedgerComponents:
    return LedgerComponents(storage, audit_logger, ledger_settings)


class Seed:
    """Accounts and categories created straight through storage."""

    def __init__(self, wallet, card_usd, archived, salary, groceries, transfer):
        self.wallet = wallet
        self.card_usd = card_usd
        self.archived = archived
        self.salary = salary
        self.groceries = groceries
        self.transfer = transfer


@pytest.fixture
async def seed(storage) -> Seed:
    wallet = await storage.create_account(Account(
        family_id=FAMILY_ID, name="Wallet", type=AccountType.CASH,
        currency="RUB", balance_minor=10_000,
    ))
    card_usd = await storage.create_account(Account(
        family_id=FAMILY_ID, name="Dollar card", type=AccountType.CARD,
        currency="USD", balance_minor=0,
    ))
    archived = await storage.create_account(Account(
        family_id=FAMILY_ID, name="Old savings", type=AccountType.DEPOSIT,
        currency="RUB", balance_minor=500, is_archived=True,
    ))
    salary = await storage.create_category(Category(
        family_id=FAMILY_ID, name="Salary", type=CategoryType.INCOME,
    ))
    groceries = await storage.create_category(Category(
        family_id=FAMILY_ID, name="Groceries", type=CategoryType.EXPENSE,
    ))
    transfer = await storage.create_category(Category(
        family_id=FAMILY_ID, name="Between accounts", type=CategoryType.TRANSFER,
    ))
    return Seed(wallet, card_usd, archived, salary, groceries, transfer)
