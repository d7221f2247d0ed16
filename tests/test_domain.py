from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest

from ledger.domain import (
    DEFAULT_ACCOUNTS,
    ExpenseCategory,
    ExpenseTransaction,
    IncomeTransaction,
    SubscriptionType,
    TransactionStatus,
    TransactionType,
    default_expense_description,
    default_income_description,
    subscription_price,
    to_amount,
)


def test_default_accounts():
    assert [a.id for a in DEFAULT_ACCOUNTS] == ["acc-1", "acc-2"]
    assert all(a.balance == 0 and a.currency == "TJS" for a in DEFAULT_ACCOUNTS)


def test_to_amount_keeps_float_digits():
    assert to_amount(19.99) == Decimal("19.99")
    assert to_amount("5") == Decimal("5")
    assert to_amount(7) == Decimal("7")


def test_transaction_variants():
    common = dict(id="t", description="", amount=Decimal("10"), date="2025-01-01",
                  status=TransactionStatus.COMPLETED, account_id="acc-1", created_at="")
    inc = IncomeTransaction(subscription_type=SubscriptionType.MONTHLY, **common)
    exp = ExpenseTransaction(category=ExpenseCategory.SALARY, **common)

    assert inc.type is TransactionType.INCOME
    assert exp.type is TransactionType.EXPENSE
    assert inc.signed_amount == Decimal("10")
    assert exp.signed_amount == Decimal("-10")
    assert not hasattr(inc, "category")
    assert not hasattr(exp, "subscription_type")


def test_transactions_are_immutable():
    tx = IncomeTransaction(id="t", description="", amount=Decimal("1"), date="2025-01-01",
                           status=TransactionStatus.COMPLETED, account_id="acc-1", created_at="")
    with pytest.raises(FrozenInstanceError):
        tx.amount = Decimal("2")


def test_subscription_price():
    assert subscription_price(SubscriptionType.YEARLY) == Decimal("199.99")
    assert subscription_price("halfYearly") == Decimal("99.99")
    assert subscription_price("monthly") == Decimal("19.99")
    assert subscription_price("custom", 42.5) == Decimal("42.5")
    assert subscription_price("custom") == 0


def test_default_descriptions():
    assert default_income_description("monthly") == "Месячная подписка"
    assert default_income_description("yearly", " ООО Ромашка ") == "Годовая подписка - ООО Ромашка"
    assert default_expense_description("server") == "Сервер/Хостинг"


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "Infinity", "NaN", "1e15", -10**15, "abc"])
def test_to_amount_rejects_unusable_numbers(value):
    with pytest.raises(ValueError):
        to_amount(value)


def test_to_amount_accepts_large_finite_values():
    assert to_amount("999999999999999.99") == Decimal("999999999999999.99")
