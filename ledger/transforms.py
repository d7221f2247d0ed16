from dataclasses import replace
from decimal import Decimal
from functools import reduce
from typing import Tuple

from ledger.domain import Account, Transaction, to_amount

ACCOUNT_FIELDS = ("name", "bank", "balance", "currency")


def add_transaction(
    trans: Tuple[Transaction, ...], t: Transaction
) -> Tuple[Transaction, ...]:
    # newest first
    return (t,) + trans


def remove_transaction(
    trans: Tuple[Transaction, ...], tx_id: str
) -> Tuple[Transaction, ...]:
    return tuple(t for t in trans if t.id != tx_id)


def adjust_balance(
    accounts: Tuple[Account, ...], acc_id: str, delta: Decimal
) -> Tuple[Account, ...]:
    """Shift one account's balance by `delta`; unknown ids leave the tuple as is.

    Raises ValueError when the new balance leaves the storable range.
    """
    return tuple(
        replace(a, balance=to_amount(a.balance + delta)) if a.id == acc_id else a
        for a in accounts
    )


def update_account(
    accounts: Tuple[Account, ...], acc_id: str, changes: dict
) -> Tuple[Account, ...]:
    unknown = set(changes) - set(ACCOUNT_FIELDS)
    if unknown:
        raise TypeError(f"Cannot update account fields: {sorted(unknown)}")
    return tuple(
        replace(a, **changes) if a.id == acc_id else a
        for a in accounts
    )


def remove_account(
    accounts: Tuple[Account, ...], acc_id: str
) -> Tuple[Account, ...]:
    return tuple(a for a in accounts if a.id != acc_id)


def account_balance(trans: Tuple[Transaction, ...], acc_id: str) -> Decimal:
    """Balance implied by the transaction log alone."""
    return reduce(
        lambda acc, t: acc + t.signed_amount if t.account_id == acc_id else acc,
        trans,
        Decimal("0"),
    )
