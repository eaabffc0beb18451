from dataclasses import dataclass
from datetime import date, datetime

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "transport",
    "accommodation",
    "food",
    "entertainment",
    "shopping",
    "other",
)

FUTURE_TRIP = "future-trip"
ON_TRACK = "on-track"
UNDER_BUDGET = "under-budget"
OVER_BUDGET = "over-budget"


@dataclass(slots=True)
class Vacation:
    id: str
    destination: str
    country: str
    hotel: str
    start_date: datetime
    end_date: datetime
    budget: float | None
    budget_currency: str
    currency: str | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class VacationDraft:
    destination: str
    country: str
    hotel: str
    start_date: datetime
    end_date: datetime
    budget: float | None = None
    budget_currency: str | None = None
    currency: str | None = None
    image_url: str | None = None


@dataclass(slots=True)
class Expense:
    id: str
    vacation_id: str
    amount: float
    currency: str
    amount_base: float
    category: str
    description: str
    expense_date: date
    image_url: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BudgetAnalysis:
    currency: str
    total_budget: float
    total_expenses: float
    remaining_budget: float
    percentage_used: float
    total_days: int
    elapsed_days: int
    remaining_days: int
    budget_per_day: float
    avg_spent_per_day: float
    remaining_budget_per_day: float
    projected_total_spend: float
    projected_surplus: float
    is_over_budget: bool
    status: str
