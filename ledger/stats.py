from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

import pandas as pd

from ledger.domain import (
    TAX_RATE,
    ExpenseCategory,
    ExpenseTransaction,
    FinanceStats,
    IncomeTransaction,
    SubscriptionBucket,
    SubscriptionType,
    Transaction,
    to_amount,
)

ZERO = Decimal("0")
CENT = Decimal("0.01")


def compute_stats(trans: Iterable[Transaction], tax_rate=TAX_RATE) -> FinanceStats:
    """Aggregate income, expense and tax figures over the whole ledger.

    Tax-category expenses count towards `total_expense` and are also reported
    on their own as `tax_amount`; the tax bucket of `expense_breakdown` is
    seeded with that figure. Income without a plan is counted as `custom`,
    expenses without a category as `other`.
    """
    tax_rate = to_amount(tax_rate)
    total_income = ZERO
    operating_expense = ZERO
    tax_amount = ZERO
    subs = {kind: [0, ZERO] for kind in SubscriptionType}
    expenses = {cat: ZERO for cat in ExpenseCategory}

    for t in trans:
        if isinstance(t, IncomeTransaction):
            total_income += t.amount
            bucket = subs[t.subscription_type or SubscriptionType.CUSTOM]
            bucket[0] += 1
            bucket[1] += t.amount
        elif isinstance(t, ExpenseTransaction):
            if t.category is ExpenseCategory.TAX:
                tax_amount += t.amount
            else:
                operating_expense += t.amount
                expenses[t.category or ExpenseCategory.OTHER] += t.amount

    expenses[ExpenseCategory.TAX] = tax_amount
    total_expense = operating_expense + tax_amount

    return FinanceStats(
        total_income=total_income,
        total_expense=total_expense,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        calculated_tax=(total_income * tax_rate).quantize(CENT, rounding=ROUND_HALF_UP),
        net_profit=total_income - total_expense - tax_amount,
        subscription_breakdown={
            kind: SubscriptionBucket(count=c, total=total) for kind, (c, total) in subs.items()
        },
        expense_breakdown=expenses,
    )


def transactions_frame(trans: Iterable[Transaction]) -> pd.DataFrame:
    rows = []
    for t in trans:
        rows.append({
            "id": t.id,
            "date": t.date,
            "type": t.type.value,
            "description": t.description,
            "amount": float(t.amount),
            "signed_amount": float(t.signed_amount),
            "account_id": t.account_id,
            "status": t.status.value,
            "subscription_type": getattr(t, "subscription_type", None) and t.subscription_type.value,
            "category": getattr(t, "category", None) and t.category.value,
        })
    columns = ["id", "date", "type", "description", "amount", "signed_amount",
               "account_id", "status", "subscription_type", "category"]
    return pd.DataFrame(rows, columns=columns)


def monthly_totals(trans: Iterable[Transaction]) -> pd.DataFrame:
    """Income, expense and net per calendar month ("YYYY-MM"), oldest first."""
    df = transactions_frame(trans)
    if df.empty:
        return pd.DataFrame(columns=["month", "income", "expense", "net"])

    df["month"] = df["date"].str[:7]
    table = df.pivot_table(index="month", columns="type", values="amount", aggfunc="sum", fill_value=0)
    table = table.reindex(columns=["income", "expense"], fill_value=0)
    table["net"] = table["income"] - table["expense"]
    return table.reset_index().rename_axis(None, axis=1)
