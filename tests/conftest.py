"""
Shared fixtures: in-memory stores, a controllable clock, and a store that
can be told to fail writes for specific documents.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from card_ledger.config import SeedAccount
from card_ledger.errors import PersistenceError
from card_ledger.ledger import TransactionLedger
from card_ledger.repository import StoreAccountRepository
from card_ledger.storage import InMemoryDocumentStore
from card_ledger.validation import AccountValidator


C1 = "1111222233334444"
C2 = "5555666677778888"
C3 = "1212343456567878"
ADMIN = "9999888877776666"


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FailingStore(InMemoryDocumentStore):
    """In-memory store whose writes fail for the named documents"""

    def __init__(self):
        super().__init__()
        self.fail_documents = set()
        self._countdown = {}

    def fail_next_write(self, name, skip=0):
        """Fail a single write of ``name`` after letting ``skip`` writes through"""
        self._countdown[name] = skip

    def write(self, name, records):
        if name in self.fail_documents:
            raise PersistenceError(f"Simulated write failure for {name}")
        if name in self._countdown:
            if self._countdown[name] == 0:
                del self._countdown[name]
                raise PersistenceError(f"Simulated write failure for {name}")
            self._countdown[name] -= 1
        super().write(name, records)


def seeds():
    return [
        SeedAccount(card_number=C1, pin="1111", holder_name="Alice",
                    balance=Decimal("5000.00"), withdraw_limit=Decimal("2000.00")),
        SeedAccount(card_number=C2, pin="2222", holder_name="Bob",
                    balance=Decimal("10000.00"), withdraw_limit=Decimal("3000.00")),
        SeedAccount(card_number=C3, pin="3333", holder_name="Carol",
                    balance=Decimal("800.00"), withdraw_limit=Decimal("500.00")),
        SeedAccount(card_number=ADMIN, pin="8888", holder_name="Administrator",
                    balance=Decimal("0.00"), withdraw_limit=Decimal("1000.00"),
                    is_admin=True),
    ]


@pytest.fixture
def clock():
    """Clock fixed at noon UTC on a known date"""
    return FakeClock(datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    """Create in-memory store for tests"""
    return FailingStore()


@pytest.fixture
def repository(store):
    return StoreAccountRepository(store, seed_accounts=seeds())


@pytest.fixture
def ledger(store, clock):
    return TransactionLedger(store, clock=clock)


@pytest.fixture
def validator(repository, clock):
    return AccountValidator(repository, clock=clock)
