"""
Core Data Models for Expense Ledger

These models define the schemas for every record that moves between the
spreadsheet and the rest of the application:
1. Expense - one row of the Transactions sheet
2. Budget  - one row of the Budgets sheet
3. Setting - one row of the Settings sheet
4. Categories - plain strings, built-in set plus a stored set

Amounts are Decimal end to end. Floats are only produced at the very edge
(spreadsheet cells, prompt text).
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_TIME_ZONE = ZoneInfo("Asia/Kolkata")

CREDIT_CARD = "Credit Card"
DEFAULT_CATEGORY = "Other"
MASTER_PASSWORD_KEY = "masterPassword"

# Built-in categories can never be deleted; user categories live in the
# Categories sheet and are merged with these.
BUILT_IN_CATEGORIES: tuple[str, ...] = (
    "Grocery",
    "Fruits",
    "Veggi",
    "NonVeg",
    "Snacks",
    "Extra",
    "Petrol",
    CREDIT_CARD,
    "FoodCard",
    DEFAULT_CATEGORY,
)

# Used when the Budgets sheet is empty
DEFAULT_BUDGET_LIMITS: dict[str, Decimal] = {
    "Grocery": Decimal("500"),
    "Fruits": Decimal("400"),
    "Veggi": Decimal("300"),
    "NonVeg": Decimal("1200"),
    "Snacks": Decimal("200"),
    "Extra": Decimal("300"),
    "Petrol": Decimal("1000"),
    CREDIT_CARD: Decimal("0"),
    DEFAULT_CATEGORY: Decimal("100"),
}


def localize_day(value: date | datetime, zone: ZoneInfo = DEFAULT_TIME_ZONE) -> datetime:
    """
    Turn a calendar day into an absolute instant.

    Plain dates and naive datetimes are read as wall-clock values in `zone`.
    Aware datetimes are converted to `zone` first. Either way the result is
    local midnight in `zone`.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(zone)
        return datetime.combine(value.date(), time(), tzinfo=zone)
    return datetime.combine(value, time(), tzinfo=zone)


def is_built_in_category(name: str) -> bool:
    return name in BUILT_IN_CATEGORIES


def effective_categories(stored: Iterable[str]) -> list[str]:
    """Sorted union of the built-in set and the stored set, duplicates removed."""
    names = {name.strip() for name in stored if name and name.strip()}
    names.update(BUILT_IN_CATEGORIES)
    return sorted(names)


# =============================================================================
# EXPENSE
# =============================================================================

class Expense(BaseModel):
    """
    A single ledger entry.

    `id` is None until the store allocates one on add.
    `paid` only means something for the Credit Card category: it is
    forced to None for every other category and defaults to False there.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Store-allocated identifier"
    )
    description: str = Field(
        default="",
        description="What the money was spent on"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        allow_inf_nan=False,
        description="Amount spent (non-negative, finite)"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        description="Category label from the open category set"
    )
    date: datetime = Field(
        ...,
        description="Day of the expense as an aware local-midnight instant"
    )
    paid: Optional[bool] = Field(
        default=None,
        description="Whether a credit card expense has been settled"
    )

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v, info: ValidationInfo):
        # model_validate(..., context={"zone": zone}) selects the storage zone
        if isinstance(v, (date, datetime)):
            zone = (info.context or {}).get("zone", DEFAULT_TIME_ZONE)
            return localize_day(v, zone)
        return v

    @field_validator("category")
    @classmethod
    def default_blank_category(cls, v: str) -> str:
        return v or DEFAULT_CATEGORY

    @model_validator(mode="after")
    def normalize_paid(self) -> "Expense":
        if self.category != CREDIT_CARD:
            self.paid = None
        elif self.paid is None:
            self.paid = False
        return self

    @property
    def is_credit_card(self) -> bool:
        return self.category == CREDIT_CARD

    @classmethod
    def in_zone(cls, zone: ZoneInfo, **fields) -> "Expense":
        """Build an expense whose date is pinned to local midnight in `zone`."""
        return cls.model_validate(fields, context={"zone": zone})

    def storage_date(self, zone: ZoneInfo = DEFAULT_TIME_ZONE) -> str:
        """Calendar day in the storage zone, formatted for the sheet."""
        return self.date.astimezone(zone).strftime("%Y-%m-%d")


# =============================================================================
# BUDGETS
# =============================================================================

class Budget(BaseModel):
    """Spending limit for one category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(..., min_length=1)
    limit: Decimal = Field(
        ...,
        ge=0,
        allow_inf_nan=False,
        description="Monthly limit"
    )


class BudgetBook(BaseModel):
    """
    Client-held budget collection.

    At most one budget per category; setting a limit for a category that
    already has one overwrites it (last write wins). Saving the book to
    the store replaces every stored budget row.
    """

    budgets: list[Budget] = Field(default_factory=list)

    @model_validator(mode="after")
    def collapse_duplicates(self) -> "BudgetBook":
        # Later entries win, first position is kept
        merged: dict[str, Budget] = {}
        for budget in self.budgets:
            merged[budget.category] = budget
        self.budgets = list(merged.values())
        return self

    @classmethod
    def defaults(cls) -> "BudgetBook":
        return cls(budgets=[
            Budget(category=category, limit=limit)
            for category, limit in DEFAULT_BUDGET_LIMITS.items()
        ])

    @property
    def categories(self) -> list[str]:
        return [b.category for b in self.budgets]

    @property
    def total_limit(self) -> Decimal:
        """Total monthly budget. Credit card repayments are not budgeted spend."""
        return sum(
            (b.limit for b in self.budgets if b.category != CREDIT_CARD),
            Decimal("0"),
        )

    def get(self, category: str) -> Optional[Budget]:
        for budget in self.budgets:
            if budget.category == category:
                return budget
        return None

    def set_limit(self, category: str, limit: Decimal) -> Budget:
        """Add or overwrite the budget for `category`."""
        budget = Budget(category=category, limit=max(Decimal(limit), Decimal("0")))
        for idx, existing in enumerate(self.budgets):
            if existing.category == budget.category:
                self.budgets[idx] = budget
                return budget
        self.budgets.append(budget)
        return budget

    def remove(self, category: str) -> bool:
        before = len(self.budgets)
        self.budgets = [b for b in self.budgets if b.category != category]
        return len(self.budgets) != before

    def rescale_total(self, new_total: Decimal) -> None:
        """
        Spread a new total over the non credit card budgets.

        Limits keep their current proportions; when the current total is
        zero the new total is split equally. The Credit Card budget is left
        untouched.
        """
        new_total = max(Decimal(new_total), Decimal("0"))
        current_total = self.total_limit
        adjustable = [b for b in self.budgets if b.category != CREDIT_CARD]
        if not adjustable:
            return

        for budget in adjustable:
            if current_total == 0:
                share = new_total / len(adjustable)
            else:
                share = new_total * (budget.limit / current_total)
            self.set_limit(budget.category, share.quantize(Decimal("0.01")))


# =============================================================================
# SETTINGS
# =============================================================================

class Setting(BaseModel):
    """Key/value row of the Settings sheet."""
    model_config = ConfigDict(str_strip_whitespace=True)

    key: str = Field(..., min_length=1, max_length=100)
    value: str = Field(default="")
