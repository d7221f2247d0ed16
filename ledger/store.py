"""Ledger store: the single owner of the transaction list and the account list.

Every change to either collection goes through a `LedgerStore` method, which
keeps account balances in step with the transactions booked against them and
writes the changed collection back to the key-value store before returning.
Balances are maintained incrementally, so `reconcile()` exists to detect drift
against the transaction log.

Build one store at application startup, call `load()`, and hand the instance
to whatever needs it.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Mapping, NamedTuple, Optional, Tuple

from ledger import codec, transforms
from ledger.config import Settings, get_settings
from ledger.domain import (
    DEFAULT_ACCOUNTS,
    Account,
    ExpenseCategory,
    ExpenseTransaction,
    FinanceStats,
    IncomeTransaction,
    SubscriptionType,
    Transaction,
    TransactionStatus,
    TransactionType,
    to_amount,
)
from ledger.events import (
    ACCOUNT_ADDED,
    ACCOUNT_DELETED,
    ACCOUNT_UPDATED,
    LEDGER_RECOVERED,
    TRANSACTION_ADDED,
    TRANSACTION_DELETED,
    EventBus,
)
from ledger.filters import filter_transactions
from ledger.functional import Either, Maybe, Right, check_account_deletable, safe_account, safe_transaction
from ledger.stats import compute_stats
from ledger.storage import KeyValueStore

logger = logging.getLogger(__name__)

# camelCase keys as sent by the browser forms
_KEY_ALIASES = {
    "accountId": "account_id",
    "subscriptionType": "subscription_type",
}


def new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize(data: Mapping) -> dict:
    return {_KEY_ALIASES.get(k, k): v for k, v in data.items()}


def _iso_date(value) -> str:
    """A transaction date as "YYYY-MM-DD"; date and datetime objects are accepted."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and len(value) == 10:
        try:
            return date.fromisoformat(value).isoformat()
        except ValueError:
            pass
    raise ValueError(f"Transaction date must be YYYY-MM-DD, got {value!r}")


class LoadReport(NamedTuple):
    transactions_recovered: bool
    accounts_recovered: bool

    @property
    def recovered(self) -> bool:
        return self.transactions_recovered or self.accounts_recovered


class LedgerStore:

    def __init__(
        self,
        storage: KeyValueStore,
        settings: Optional[Settings] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.storage = storage
        self.settings = settings or get_settings()
        self.bus = bus
        self._clock = clock or _utc_now
        self._new_id = id_factory or new_id
        self._transactions: Tuple[Transaction, ...] = ()
        self._accounts: Tuple[Account, ...] = ()
        self.ready = False

    # --- loading and persistence

    def _read(self, key: str) -> Tuple[Optional[str], bool]:
        """Stored text for `key` and whether reading it failed."""
        try:
            return self.storage.get(key), False
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s from storage: %s", key, e)
            return None, True

    def load(self) -> LoadReport:
        """Read both collections, falling back to defaults on missing or corrupt blobs."""
        tx_text, tx_recovered = self._read(self.settings.transactions_key)
        acc_text, acc_recovered = self._read(self.settings.accounts_key)

        transactions = ()
        if tx_text is not None:
            try:
                transactions = tuple(codec.decode_transactions(tx_text))
            except codec.CodecError as e:
                logger.warning("Stored transactions are unreadable, starting empty: %s", e)
                tx_recovered = True

        accounts = DEFAULT_ACCOUNTS
        if acc_text is not None:
            try:
                accounts = tuple(codec.decode_accounts(acc_text))
            except codec.CodecError as e:
                logger.warning("Stored accounts are unreadable, using default accounts: %s", e)
                acc_recovered = True

        self._transactions = transactions
        self._accounts = tuple(accounts)
        self.ready = True
        logger.info("Ledger loaded: %d transactions, %d accounts",
                    len(self._transactions), len(self._accounts))

        try:
            self._save_transactions()
            self._save_accounts()
        except OSError as e:
            # the ledger stays usable in memory; later mutations retry the write
            logger.warning("Could not write the loaded ledger back to storage: %s", e)

        report = LoadReport(transactions_recovered=tx_recovered, accounts_recovered=acc_recovered)
        if report.recovered:
            self._publish(LEDGER_RECOVERED, report._asdict())
        return report

    def _save_transactions(self) -> None:
        self.storage.set(self.settings.transactions_key, codec.encode_transactions(self._transactions))

    def _save_accounts(self) -> None:
        self.storage.set(self.settings.accounts_key, codec.encode_accounts(self._accounts))

    def _publish(self, name: str, payload: dict) -> None:
        if self.bus is not None:
            self.bus.publish(name, payload)

    def _not_ready(self, operation: str) -> bool:
        if not self.ready:
            logger.debug("Ignoring %s before the ledger is loaded", operation)
            return True
        return False

    # --- read access

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return self._transactions

    @property
    def accounts(self) -> Tuple[Account, ...]:
        return self._accounts

    def find_account(self, account_id: str) -> Maybe[Account]:
        return safe_account(self._accounts, account_id)

    def find_transaction(self, tx_id: str) -> Maybe[Transaction]:
        return safe_transaction(self._transactions, tx_id)

    # --- transactions

    def add_transaction(self, type, data: Mapping) -> Optional[Transaction]:
        """Book an income or expense and move the account balance accordingly.

        `data` holds description, amount, date and account_id, plus
        subscription_type for income or category for expense. An account_id
        with no matching account is accepted: the transaction is recorded and
        no balance changes.
        """
        if self._not_ready("add_transaction"):
            return None

        kind = TransactionType(type)
        fields = _normalize(data)
        common = dict(
            id=self._new_id(),
            description=fields.get("description") or "",
            amount=to_amount(fields["amount"]),
            date=_iso_date(fields["date"]),
            status=TransactionStatus.COMPLETED,
            account_id=fields["account_id"],
            created_at=self._clock().isoformat(),
        )
        if kind is TransactionType.INCOME:
            if fields.get("category") is not None:
                raise ValueError("An income transaction cannot have an expense category")
            sub = fields.get("subscription_type")
            tx = IncomeTransaction(subscription_type=SubscriptionType(sub) if sub else None, **common)
        else:
            if fields.get("subscription_type") is not None:
                raise ValueError("An expense transaction cannot have a subscription type")
            cat = fields.get("category")
            tx = ExpenseTransaction(category=ExpenseCategory(cat) if cat else None, **common)

        # build and encode both lists before touching state
        transactions = transforms.add_transaction(self._transactions, tx)
        tx_text = codec.encode_transactions(transactions)
        account_known = self.find_account(tx.account_id).is_some()
        accounts, acc_text = self._accounts, None
        if account_known:
            accounts = transforms.adjust_balance(self._accounts, tx.account_id, tx.signed_amount)
            acc_text = codec.encode_accounts(accounts)
        else:
            logger.warning("Transaction %s references unknown account %s, balance left unchanged",
                           tx.id, tx.account_id)

        self._transactions = transactions
        self._accounts = accounts
        self.storage.set(self.settings.transactions_key, tx_text)
        if acc_text is not None:
            self.storage.set(self.settings.accounts_key, acc_text)

        logger.info("Added %s %s of %s on account %s", kind.value, tx.id, tx.amount, tx.account_id)
        self._publish(TRANSACTION_ADDED, {"transaction": tx, "account_known": account_known})
        return tx

    def delete_transaction(self, tx_id: str) -> Optional[Transaction]:
        """Remove a transaction and undo its effect on the account balance."""
        if self._not_ready("delete_transaction"):
            return None

        found = self.find_transaction(tx_id)
        if found.is_none():
            logger.debug("delete_transaction: no transaction %s", tx_id)
            return None
        tx = found.get_or_else(None)

        account_known = self.find_account(tx.account_id).is_some()
        if account_known:
            self._accounts = transforms.adjust_balance(self._accounts, tx.account_id, -tx.signed_amount)
        else:
            logger.warning("Account %s of transaction %s no longer exists, balance not reverted",
                           tx.account_id, tx.id)
        self._transactions = transforms.remove_transaction(self._transactions, tx_id)

        self._save_transactions()
        if account_known:
            self._save_accounts()

        logger.info("Deleted transaction %s", tx_id)
        self._publish(TRANSACTION_DELETED, {"transaction": tx, "account_known": account_known})
        return tx

    # --- accounts

    def add_account(self, data: Mapping) -> Optional[Account]:
        if self._not_ready("add_account"):
            return None

        account = Account(
            id=self._new_id(),
            name=data["name"],
            bank=data["bank"],
            balance=to_amount(data.get("balance", 0)),
            currency=data.get("currency") or self.settings.default_currency,
        )
        self._accounts = self._accounts + (account,)
        self._save_accounts()

        logger.info("Added account %s (%s)", account.id, account.name)
        self._publish(ACCOUNT_ADDED, {"account": account})
        return account

    def update_account(self, account_id: str, data: Optional[Mapping] = None, **changes) -> Optional[Account]:
        """Merge the given fields into an account; the id never changes."""
        if self._not_ready("update_account"):
            return None

        changes = {**(data or {}), **changes}
        if "balance" in changes:
            changes["balance"] = to_amount(changes["balance"])
        if self.find_account(account_id).is_none():
            logger.debug("update_account: no account %s", account_id)
            return None

        self._accounts = transforms.update_account(self._accounts, account_id, changes)
        self._save_accounts()

        account = self.find_account(account_id).get_or_else(None)
        logger.info("Updated account %s: %s", account_id, sorted(changes))
        self._publish(ACCOUNT_UPDATED, {"account": account, "changes": changes})
        return account

    def delete_account(self, account_id: str) -> Optional[Either[dict, dict]]:
        """Remove an account unless transactions still reference it.

        Returns Left with the refusal details, or Right({"success": True, ...}).
        """
        if self._not_ready("delete_account"):
            return None

        check = check_account_deletable(account_id, self._transactions)
        if check.is_left():
            logger.info("Refused to delete account %s: %d transactions reference it",
                        account_id, check.get_error()["transactions"])
            return check

        existed = self.find_account(account_id).is_some()
        if existed:
            self._accounts = transforms.remove_account(self._accounts, account_id)
            self._save_accounts()
            logger.info("Deleted account %s", account_id)
            self._publish(ACCOUNT_DELETED, {"account_id": account_id})
        return Right({"success": True, "account_id": account_id, "deleted": existed})

    # --- queries

    def get_stats(self) -> FinanceStats:
        return compute_stats(self._transactions, self.settings.tax_rate)

    def get_filtered_transactions(
        self,
        filter: str = "all",
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> Tuple[Transaction, ...]:
        return filter_transactions(self._transactions, filter, date_from, date_to)

    def reconcile(self, opening_balances: Optional[Mapping[str, Decimal]] = None) -> Dict[str, Decimal]:
        """Accounts whose balance disagrees with opening balance plus the log, mapped to the drift."""
        opening_balances = opening_balances or {}
        drift = {}
        for acc in self._accounts:
            expected = to_amount(opening_balances.get(acc.id, 0)) + transforms.account_balance(
                self._transactions, acc.id)
            if acc.balance != expected:
                drift[acc.id] = acc.balance - expected
        return drift
