from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Optional, Union


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    # reserved for external status updates, never assigned by the store
    PENDING = "pending"
    FAILED = "failed"


class SubscriptionType(str, Enum):
    YEARLY = "yearly"
    HALF_YEARLY = "halfYearly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class ExpenseCategory(str, Enum):
    SERVER = "server"
    ADVERTISING = "advertising"
    SALARY = "salary"
    TAX = "tax"
    OTHER = "other"


# amounts at or above this magnitude are rejected
MAX_AMOUNT = Decimal("1e15")


def to_amount(value) -> Decimal:
    """Coerce a user-supplied number into a finite Decimal without float noise.

    Raises ValueError for NaN, infinities and magnitudes of MAX_AMOUNT or more.
    """
    if isinstance(value, float):
        value = Decimal(str(value))
    elif not isinstance(value, Decimal):
        try:
            value = Decimal(value)
        except InvalidOperation as e:
            raise ValueError(f"Not a number: {value!r}") from e
    if not value.is_finite() or abs(value) >= MAX_AMOUNT:
        raise ValueError(f"Amount out of range: {value}")
    return value


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    bank: str
    balance: Decimal   # signed, in `currency`
    currency: str


@dataclass(frozen=True)
class _TransactionBase:
    id: str
    description: str
    amount: Decimal      # >= 0, sign comes from the transaction type
    date: str            # "YYYY-MM-DD", user supplied
    status: TransactionStatus
    account_id: str
    created_at: str      # ISO timestamp of record creation


@dataclass(frozen=True)
class IncomeTransaction(_TransactionBase):
    subscription_type: Optional[SubscriptionType] = None

    @property
    def type(self) -> TransactionType:
        return TransactionType.INCOME

    @property
    def signed_amount(self) -> Decimal:
        return self.amount


@dataclass(frozen=True)
class ExpenseTransaction(_TransactionBase):
    category: Optional[ExpenseCategory] = None

    @property
    def type(self) -> TransactionType:
        return TransactionType.EXPENSE

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount


Transaction = Union[IncomeTransaction, ExpenseTransaction]


@dataclass(frozen=True)
class SubscriptionBucket:
    count: int = 0
    total: Decimal = Decimal("0")


@dataclass(frozen=True)
class FinanceStats:
    total_income: Decimal
    total_expense: Decimal   # includes tax-category expenses
    tax_rate: Decimal
    tax_amount: Decimal
    calculated_tax: Decimal  # tax_rate applied to total_income
    net_profit: Decimal
    subscription_breakdown: Dict[SubscriptionType, SubscriptionBucket] = field(default_factory=dict)
    expense_breakdown: Dict[ExpenseCategory, Decimal] = field(default_factory=dict)


DEFAULT_ACCOUNTS = (
    Account(id="acc-1", name="Основной счёт", bank="Душанбе Сити", balance=Decimal("0"), currency="TJS"),
    Account(id="acc-2", name="Резервный счёт", bank="АлифБанк", balance=Decimal("0"), currency="TJS"),
)

TAX_RATE = Decimal("0.06")

SUBSCRIPTION_PRICES = {
    SubscriptionType.YEARLY: Decimal("199.99"),
    SubscriptionType.HALF_YEARLY: Decimal("99.99"),
    SubscriptionType.MONTHLY: Decimal("19.99"),
}

SUBSCRIPTION_LABELS = {
    SubscriptionType.YEARLY: "Годовая подписка",
    SubscriptionType.HALF_YEARLY: "Полугодовая подписка",
    SubscriptionType.MONTHLY: "Месячная подписка",
    SubscriptionType.CUSTOM: "Другое",
}

EXPENSE_CATEGORY_LABELS = {
    ExpenseCategory.SERVER: "Сервер/Хостинг",
    ExpenseCategory.ADVERTISING: "Реклама",
    ExpenseCategory.SALARY: "Зарплата",
    ExpenseCategory.TAX: "Налог",
    ExpenseCategory.OTHER: "Другое",
}


def subscription_price(kind: SubscriptionType, custom_amount=None) -> Decimal:
    """List price of a plan; `custom` plans are priced by the caller."""
    kind = SubscriptionType(kind)
    if kind is SubscriptionType.CUSTOM:
        return to_amount(custom_amount or 0)
    return SUBSCRIPTION_PRICES[kind]


def default_income_description(kind: SubscriptionType, customer_name: str = "") -> str:
    label = SUBSCRIPTION_LABELS[SubscriptionType(kind)]
    customer_name = customer_name.strip()
    return f"{label} - {customer_name}" if customer_name else label


def default_expense_description(category: ExpenseCategory) -> str:
    return EXPENSE_CATEGORY_LABELS[ExpenseCategory(category)]
