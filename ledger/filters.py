from typing import Callable, Iterable, List, Optional, Tuple

from ledger.domain import Transaction, TransactionType
from ledger.functional import pipe

FILTER_KINDS = ("all", TransactionType.INCOME.value, TransactionType.EXPENSE.value)


def by_type(kind: str) -> Callable[[Transaction], bool]:
    kind = kind.value if isinstance(kind, TransactionType) else kind
    if kind not in FILTER_KINDS:
        raise ValueError(f"Unknown transaction filter: {kind!r}")

    def _filter(t: Transaction) -> bool:
        return kind == "all" or t.type.value == kind

    return _filter


def by_date_range(start: Optional[str] = None, end: Optional[str] = None):
    # plain string comparison, valid for ISO "YYYY-MM-DD" dates
    def _filter(t: Transaction) -> bool:
        if start and t.date < start:
            return False
        if end and t.date > end:
            return False
        return True

    return _filter


def by_account(account_id: str):
    def _filter(t: Transaction) -> bool:
        return t.account_id == account_id

    return _filter


def newest_first(trans: Iterable[Transaction]) -> List[Transaction]:
    return sorted(trans, key=lambda t: t.date, reverse=True)


def filter_transactions(
    trans: Iterable[Transaction],
    kind: str = "all",
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> Tuple[Transaction, ...]:
    return pipe(
        trans,
        lambda ts: filter(by_type(kind), ts),
        lambda ts: filter(by_date_range(date_from, date_to), ts),
        newest_first,
        tuple,
    )
