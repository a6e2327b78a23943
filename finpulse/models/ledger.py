"""
Ledger Models for FinPulse

These are the records owned by the surrounding application: categories,
ledger entries, budgets and goals. The intelligence engines only read them.

DESIGN DECISION: Amounts are Decimal on the way in (they come from a
ledger) and are converted to float only inside the metric calculations.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from finpulse.clock import new_id, utcnow


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class CategoryType(str, Enum):
    """What kind of money movement a category groups."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    SAVINGS = "savings"
    DEBT_PAYMENT = "debt_payment"


class BudgetPeriod(str, Enum):
    """Budget period lengths."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class GoalType(str, Enum):
    SAVINGS = "savings"
    DEBT_PAYOFF = "debt_payoff"
    INVESTMENT = "investment"
    EMERGENCY_FUND = "emergency_fund"
    OTHER = "other"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Category(BaseModel):
    """A user's transaction category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType = Field(default=CategoryType.EXPENSE)


class LedgerEntry(BaseModel):
    """
    A single ledger entry (transaction).

    The sign of `amount` decides its kind: positive is income,
    negative is expense. Entries are never mutated by the engines.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    category_id: Optional[str] = None
    amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Signed amount (+ income, - expense)"
    )
    entry_date: date = Field(..., description="Date the entry was booked")
    description: Optional[str] = Field(default=None, max_length=500)

    @property
    def is_income(self) -> bool:
        return self.amount > 0

    @property
    def is_expense(self) -> bool:
        return self.amount < 0


class Budget(BaseModel):
    """A spending budget for one category."""

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    period: BudgetPeriod = Field(default=BudgetPeriod.MONTHLY)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True

    @model_validator(mode='after')
    def validate_dates(self) -> 'Budget':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self

    def is_in_effect(self, month_start: date, today: date) -> bool:
        """Whether the budget applies to the month that contains `today`."""
        if not self.is_active or self.start_date > today:
            return False
        return self.end_date is None or self.end_date >= month_start


class Goal(BaseModel):
    """A savings or payoff goal."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    goal_type: GoalType = Field(default=GoalType.SAVINGS)
    target_amount: Decimal = Field(..., ge=0, decimal_places=2)
    current_amount: Decimal = Field(default=Decimal("0"), decimal_places=2)
    target_date: Optional[date] = None
    status: GoalStatus = Field(default=GoalStatus.ACTIVE)
    created_at: datetime = Field(default_factory=utcnow)
