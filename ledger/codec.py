"""Text encoding of the two persisted ledger collections.

Both collections are stored as a JSON array of objects keyed the same way the
browser version of the finance screen stored them (camelCase keys), so an
exported blob can be loaded by either side. There is no schema version: a blob
that does not decode into valid records is rejected as a whole.
"""
import json
from decimal import Decimal, InvalidOperation
from typing import Iterable, List

from ledger.domain import (
    Account,
    ExpenseCategory,
    ExpenseTransaction,
    IncomeTransaction,
    SubscriptionType,
    Transaction,
    TransactionStatus,
    TransactionType,
    to_amount,
)


class CodecError(ValueError):
    """Raised when a stored blob cannot be decoded into ledger records."""


def _number(value: Decimal):
    return int(value) if value == value.to_integral_value() else float(value)


def transaction_to_dict(t: Transaction) -> dict:
    d = {
        "id": t.id,
        "type": t.type.value,
        "description": t.description,
        "amount": _number(t.amount),
        "date": t.date,
        "status": t.status.value,
        "accountId": t.account_id,
        "createdAt": t.created_at,
    }
    if isinstance(t, IncomeTransaction) and t.subscription_type is not None:
        d["subscriptionType"] = t.subscription_type.value
    if isinstance(t, ExpenseTransaction) and t.category is not None:
        d["category"] = t.category.value
    return d


def account_to_dict(a: Account) -> dict:
    return {
        "id": a.id,
        "name": a.name,
        "bank": a.bank,
        "balance": _number(a.balance),
        "currency": a.currency,
    }


def _require(d: dict, key: str, kind=str):
    if key not in d:
        raise CodecError(f"missing field {key!r}")
    value = d[key]
    if not isinstance(value, kind) or isinstance(value, bool):
        raise CodecError(f"field {key!r} has unexpected type {type(value).__name__}")
    return value


def _amount(d: dict, key: str) -> Decimal:
    value = _require(d, key, (int, float, Decimal, str))
    try:
        return to_amount(value)
    except (InvalidOperation, ValueError) as e:
        raise CodecError(f"field {key!r} is not a usable amount: {value!r}") from e


def transaction_from_dict(d) -> Transaction:
    if not isinstance(d, dict):
        raise CodecError(f"expected an object, got {type(d).__name__}")
    try:
        kind = TransactionType(_require(d, "type"))
        common = dict(
            id=_require(d, "id"),
            description=d.get("description") or "",
            amount=_amount(d, "amount"),
            date=_require(d, "date"),
            status=TransactionStatus(d.get("status", TransactionStatus.COMPLETED.value)),
            account_id=_require(d, "accountId"),
            created_at=d.get("createdAt") or "",
        )
        if kind is TransactionType.INCOME:
            sub = d.get("subscriptionType")
            return IncomeTransaction(
                subscription_type=SubscriptionType(sub) if sub else None, **common
            )
        cat = d.get("category")
        return ExpenseTransaction(category=ExpenseCategory(cat) if cat else None, **common)
    except CodecError:
        raise
    except ValueError as e:
        # unknown enum values
        raise CodecError(str(e)) from e


def account_from_dict(d) -> Account:
    if not isinstance(d, dict):
        raise CodecError(f"expected an object, got {type(d).__name__}")
    return Account(
        id=_require(d, "id"),
        name=_require(d, "name"),
        bank=_require(d, "bank"),
        balance=_amount(d, "balance"),
        currency=_require(d, "currency"),
    )


def _reject_constant(name: str):
    raise CodecError(f"non-finite number {name}")


def _load_list(text: str) -> list:
    try:
        data = json.loads(text, parse_float=Decimal, parse_constant=_reject_constant)
    except CodecError:
        raise
    except (TypeError, ValueError) as e:
        # ValueError also covers integer literals too long to convert
        raise CodecError(f"invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise CodecError(f"expected a JSON array, got {type(data).__name__}")
    return data


def encode_transactions(trans: Iterable[Transaction]) -> str:
    return json.dumps([transaction_to_dict(t) for t in trans], ensure_ascii=False)


def encode_accounts(accounts: Iterable[Account]) -> str:
    return json.dumps([account_to_dict(a) for a in accounts], ensure_ascii=False)


def decode_transactions(text: str) -> List[Transaction]:
    return [transaction_from_dict(d) for d in _load_list(text)]


def decode_accounts(text: str) -> List[Account]:
    return [account_from_dict(d) for d in _load_list(text)]
