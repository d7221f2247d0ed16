import itertools
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from ledger import codec
from ledger.config import Settings
from ledger.domain import DEFAULT_ACCOUNTS, ExpenseTransaction, IncomeTransaction, TransactionStatus
from ledger.events import ACCOUNT_DELETED, LEDGER_RECOVERED, TRANSACTION_ADDED, EventBus
from ledger.storage import MemoryStore
from ledger.store import LedgerStore

TX_KEY = "finance_transactions"
ACC_KEY = "finance_accounts"


def make_store(storage=None, bus=None, load=True):
    counter = itertools.count(1)
    store = LedgerStore(
        storage if storage is not None else MemoryStore(),
        settings=Settings(),
        bus=bus,
        clock=lambda: datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
        id_factory=lambda: f"id-{next(counter)}",
    )
    if load:
        store.load()
    return store


def tx_data(amount, date="2025-01-10", account_id="acc-1", **extra):
    return {"description": "Sub", "amount": amount, "date": date, "account_id": account_id, **extra}


def balance_of(store, account_id):
    return store.find_account(account_id).get_or_else(None).balance


def test_fresh_store_uses_default_accounts():
    store = make_store()
    assert store.ready
    assert store.accounts == DEFAULT_ACCOUNTS
    assert store.transactions == ()


def test_load_persists_defaults():
    storage = MemoryStore()
    make_store(storage)
    assert codec.decode_accounts(storage.get(ACC_KEY)) == list(DEFAULT_ACCOUNTS)
    assert storage.get(TX_KEY) == "[]"


def test_not_ready_store_ignores_mutations():
    storage = MemoryStore()
    store = make_store(storage, load=False)
    assert store.add_transaction("income", tx_data(10)) is None
    assert store.add_account({"name": "x", "bank": "y"}) is None
    assert store.delete_account("acc-1") is None
    assert store.transactions == ()
    assert TX_KEY not in storage


def test_add_income_increases_balance():
    store = make_store()
    tx = store.add_transaction("income", tx_data(100, subscription_type="monthly"))

    assert isinstance(tx, IncomeTransaction)
    assert tx.status is TransactionStatus.COMPLETED
    assert tx.created_at.startswith("2025-01-15T12:00")
    assert balance_of(store, "acc-1") == Decimal("100")
    assert balance_of(store, "acc-2") == 0


def test_add_expense_decreases_balance():
    store = make_store()
    tx = store.add_transaction("expense", {
        "description": "VPS", "amount": 40.5, "date": "2025-01-11",
        "accountId": "acc-2", "category": "server",
    })
    assert isinstance(tx, ExpenseTransaction)
    assert balance_of(store, "acc-2") == Decimal("-40.5")


def test_new_transactions_come_first():
    store = make_store()
    first = store.add_transaction("income", tx_data(1))
    second = store.add_transaction("income", tx_data(2))
    assert store.transactions == (second, first)


def test_add_then_delete_restores_balance():
    store = make_store()
    store.add_transaction("income", tx_data(250))
    before = balance_of(store, "acc-1")

    tx = store.add_transaction("expense", tx_data(75, category="advertising"))
    store.delete_transaction(tx.id)

    assert balance_of(store, "acc-1") == before
    assert store.find_transaction(tx.id).is_none()
    assert tx not in store.get_filtered_transactions("all")


def test_balance_matches_log_after_mixed_operations():
    store = make_store()
    kept = [
        store.add_transaction("income", tx_data(199.99, account_id="acc-1")),
        store.add_transaction("expense", tx_data(20, account_id="acc-1", category="tax")),
        store.add_transaction("income", tx_data(19.99, account_id="acc-2")),
    ]
    dropped = store.add_transaction("expense", tx_data(5, account_id="acc-2"))
    store.delete_transaction(dropped.id)

    assert balance_of(store, "acc-1") == Decimal("179.99")
    assert balance_of(store, "acc-2") == Decimal("19.99")
    assert store.reconcile() == {}
    assert len(kept) == len(store.transactions)


def test_delete_unknown_transaction_is_noop():
    storage = MemoryStore()
    store = make_store(storage)
    store.add_transaction("income", tx_data(10))
    snapshot = storage.get(TX_KEY)

    assert store.delete_transaction("missing") is None
    assert storage.get(TX_KEY) == snapshot


def test_dangling_account_reference_is_tolerated():
    storage = MemoryStore()
    store = make_store(storage)
    accounts_blob = storage.get(ACC_KEY)

    tx = store.add_transaction("income", tx_data(500, account_id="nope"))

    assert store.find_transaction(tx.id).is_some()
    assert store.get_stats().total_income == Decimal("500")
    assert storage.get(ACC_KEY) == accounts_blob
    assert store.accounts == DEFAULT_ACCOUNTS


def test_delete_dangling_transaction_leaves_balances():
    store = make_store()
    acc = store.add_account({"name": "Temp", "bank": "B", "balance": 0})
    tx = store.add_transaction("income", tx_data(10, account_id="nope"))
    store.delete_transaction(tx.id)
    assert store.transactions == ()
    assert balance_of(store, acc.id) == 0


def test_delete_account_refused_with_transactions():
    store = make_store()
    store.add_transaction("income", tx_data(10, account_id="acc-1"))

    result = store.delete_account("acc-1")

    assert result.is_left()
    error = result.get_error()
    assert error["success"] is False
    assert error["transactions"] == 1
    assert error["message"]
    assert [a.id for a in store.accounts] == ["acc-1", "acc-2"]


def test_delete_account_without_transactions():
    bus = EventBus()
    deleted = []
    bus.subscribe(ACCOUNT_DELETED, lambda e, p: deleted.append(p["account_id"]))
    storage = MemoryStore()
    store = make_store(storage, bus=bus)

    result = store.delete_account("acc-2")

    assert result.is_right()
    assert result.get_or_else(None)["success"] is True
    assert [a.id for a in store.accounts] == ["acc-1"]
    assert [a.id for a in codec.decode_accounts(storage.get(ACC_KEY))] == ["acc-1"]
    assert deleted == ["acc-2"]


def test_add_and_update_account():
    store = make_store()
    acc = store.add_account({"name": "Card", "bank": "Eskhata", "balance": "12.50", "currency": "USD"})
    assert acc.balance == Decimal("12.50")

    updated = store.update_account(acc.id, name="Main card")
    assert updated.id == acc.id
    assert updated.name == "Main card"
    assert updated.bank == "Eskhata"
    assert updated.currency == "USD"


def test_add_account_defaults_currency():
    store = make_store()
    acc = store.add_account({"name": "Cash", "bank": "-"})
    assert acc.currency == "TJS"
    assert acc.balance == 0


def test_update_account_cannot_change_id():
    store = make_store()
    with pytest.raises(TypeError):
        store.update_account("acc-1", id="other")
    assert store.find_account("acc-1").is_some()


def test_update_unknown_account_returns_none():
    store = make_store()
    assert store.update_account("missing", name="x") is None


def test_income_cannot_carry_category():
    store = make_store()
    with pytest.raises(ValueError):
        store.add_transaction("income", tx_data(10, category="server"))
    assert store.transactions == ()


def test_corrupt_accounts_blob_recovers_to_defaults():
    storage = MemoryStore({ACC_KEY: "{not json"})
    bus = EventBus()
    seen = []
    bus.subscribe(LEDGER_RECOVERED, lambda e, p: seen.append(p))
    store = make_store(storage, bus=bus, load=False)

    report = store.load()

    assert store.ready
    assert report.accounts_recovered
    assert not report.transactions_recovered
    assert store.accounts == DEFAULT_ACCOUNTS
    assert store.transactions == ()
    assert seen == [{"transactions_recovered": False, "accounts_recovered": True}]


def test_corrupt_transactions_blob_recovers_to_empty():
    storage = MemoryStore({TX_KEY: '[{"id": 1}]'})
    store = make_store(storage, load=False)
    report = store.load()
    assert report.transactions_recovered
    assert store.transactions == ()


def test_reload_from_persisted_state():
    storage = MemoryStore()
    store = make_store(storage)
    store.add_transaction("income", tx_data(100, subscription_type="yearly"))
    store.add_transaction("expense", tx_data(30, category="tax"))

    reloaded = make_store(storage)

    assert reloaded.transactions == store.transactions
    assert reloaded.accounts == store.accounts
    assert balance_of(reloaded, "acc-1") == Decimal("70")


def test_add_transaction_publishes_event():
    bus = EventBus()
    events = []
    bus.subscribe(TRANSACTION_ADDED, lambda e, p: events.append(p))
    store = make_store(bus=bus)

    tx = store.add_transaction("income", tx_data(10, account_id="ghost"))

    assert events == [{"transaction": tx, "account_known": False}]


def test_reconcile_reports_drift():
    store = make_store()
    store.add_transaction("income", tx_data(100))
    store.update_account("acc-1", balance=150)
    assert store.reconcile() == {"acc-1": Decimal("50")}
    assert store.reconcile({"acc-1": 50}) == {}


def test_filtered_transactions_through_store():
    store = make_store()
    store.add_transaction("expense", tx_data(1, date="2025-01-05"))
    store.add_transaction("expense", tx_data(2, date="2025-02-01"))
    store.add_transaction("income", tx_data(3, date="2025-01-20"))
    store.add_transaction("expense", tx_data(4, date="2025-01-31"))

    result = store.get_filtered_transactions("expense", "2025-01-01", "2025-01-31")

    assert [t.date for t in result] == ["2025-01-31", "2025-01-05"]


def test_non_finite_amount_in_storage_recovers():
    storage = MemoryStore({TX_KEY: '[{"id": "1", "type": "income", "amount": Infinity, '
                                   '"date": "2025-01-01", "accountId": "acc-1"}]'})
    store = make_store(storage, load=False)

    report = store.load()

    assert store.ready
    assert report.transactions_recovered
    assert store.transactions == ()
    assert storage.get(TX_KEY) == "[]"


@pytest.mark.parametrize("amount", [float("inf"), float("nan"), Decimal("1e16")])
def test_unusable_amount_leaves_ledger_untouched(amount):
    storage = MemoryStore()
    store = make_store(storage)
    store.add_transaction("income", tx_data(50))
    saved = storage.get(TX_KEY)

    with pytest.raises(ValueError):
        store.add_transaction("income", tx_data(amount))

    assert len(store.transactions) == 1
    assert balance_of(store, "acc-1") == Decimal("50")
    assert storage.get(TX_KEY) == saved


def test_date_objects_are_stored_as_iso_strings():
    storage = MemoryStore()
    store = make_store(storage)

    tx = store.add_transaction("expense", tx_data(5, date=date(2025, 1, 2)))
    store.add_transaction("expense", tx_data(5, date=datetime(2025, 1, 3, 9, 30)))

    assert tx.date == "2025-01-02"
    assert [t.date for t in make_store(storage).transactions] == ["2025-01-03", "2025-01-02"]


@pytest.mark.parametrize("value", ["02.01.2025", "2025-1-2", "2025-02-30", None, 20250102])
def test_malformed_date_is_rejected_before_booking(value):
    storage = MemoryStore()
    store = make_store(storage)

    with pytest.raises(ValueError):
        store.add_transaction("income", tx_data(10, date=value))

    assert store.transactions == ()
    assert balance_of(store, "acc-1") == 0
    assert storage.get(TX_KEY) == "[]"
