from abc import ABC, abstractmethod
from typing import Generic, Iterable, TypeVar

from ledger.domain import Account, Transaction

T = TypeVar('T')
E = TypeVar('E')


class Maybe(Generic[T], ABC):

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_some(self) -> bool:
        pass

    def is_none(self) -> bool:
        return not self.is_some()


class Some(Maybe[T]):

    def __init__(self, value: T):
        self._value = value

    def get_or_else(self, default: T) -> T:
        return self._value

    def is_some(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Some({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Some) and self._value == other._value


class Nothing(Maybe[T]):

    def get_or_else(self, default: T) -> T:
        return default

    def is_some(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "Nothing()"

    def __eq__(self, other) -> bool:
        return isinstance(other, Nothing)


class Either(Generic[E, T], ABC):
    """Right carries a successful value, Left carries an error payload."""

    @abstractmethod
    def is_right(self) -> bool:
        pass

    def is_left(self) -> bool:
        return not self.is_right()

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def get_error(self) -> E:
        pass


class Right(Either[E, T]):

    def __init__(self, value: T):
        self._value = value

    def is_right(self) -> bool:
        return True

    def get_or_else(self, default: T) -> T:
        return self._value

    def get_error(self) -> E:
        raise ValueError("Cannot get error from Right")

    def __repr__(self) -> str:
        return f"Right({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Right) and self._value == other._value


class Left(Either[E, T]):

    def __init__(self, error: E):
        self._error = error

    def is_right(self) -> bool:
        return False

    def get_or_else(self, default: T) -> T:
        return default

    def get_error(self) -> E:
        return self._error

    def __repr__(self) -> str:
        return f"Left({self._error!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Left) and self._error == other._error


def safe_account(accounts: Iterable[Account], account_id: str) -> Maybe[Account]:
    for acc in accounts:
        if acc.id == account_id:
            return Some(acc)
    return Nothing()


def safe_transaction(transactions: Iterable[Transaction], tx_id: str) -> Maybe[Transaction]:
    for t in transactions:
        if t.id == tx_id:
            return Some(t)
    return Nothing()


def check_account_deletable(
    account_id: str,
    transactions: Iterable[Transaction],
) -> Either[dict, str]:
    """Refuse deletion of an account that still has transactions on it."""
    referencing = sum(1 for t in transactions if t.account_id == account_id)
    if referencing:
        return Left({
            "success": False,
            "error": "account_has_transactions",
            "message": "Невозможно удалить счёт с транзакциями",
            "account_id": account_id,
            "transactions": referencing,
        })
    return Right(account_id)


def pipe(x, *funcs):
    """Pipe a value through a series of functions.

    pipe(x, f, g, h) == h(g(f(x)))
    """
    res = x
    for f in funcs:
        res = f(res)
    return res
