import math
from datetime import datetime, timedelta, timezone
from typing import Iterable

from tripbudget.config import settings
from tripbudget.db.models import (
    EXPENSE_CATEGORIES,
    FUTURE_TRIP,
    ON_TRACK,
    OVER_BUDGET,
    UNDER_BUDGET,
    BudgetAnalysis,
    Expense,
    Vacation,
)
from tripbudget.services import expense_service
from tripbudget.services.currency_service import CurrencyService
from tripbudget.services.vacation_cache import VacationCache

DAY = timedelta(days=1)

UPCOMING = "upcoming"
CURRENT = "current"
PAST = "past"


def _now_for(reference: datetime) -> datetime:
    if reference.tzinfo is None:
        return datetime.now()
    return datetime.now(timezone.utc)


def _days(delta: timedelta) -> int:
    return math.ceil(delta / DAY)


def trip_phase(vacation: Vacation, now: datetime | None = None) -> str:
    now = now or _now_for(vacation.start_date)
    if now < vacation.start_date:
        return UPCOMING
    if now > vacation.end_date:
        return PAST
    return CURRENT


def vacations_in_phase(vacations: Iterable[Vacation], phase: str, now: datetime | None = None) -> list[Vacation]:
    matching = [v for v in vacations if trip_phase(v, now) == phase]
    return sorted(matching, key=lambda v: v.start_date, reverse=phase == PAST)


def trip_days(vacation: Vacation, now: datetime) -> tuple[int, int, int]:
    """Return (total, elapsed, remaining) days; the start day counts as day 1."""
    start, end = vacation.start_date, vacation.end_date
    total = max(1, _days(end - start) + 1)
    if now < start:
        return total, 0, total
    if now > end:
        return total, total, 0
    return total, _days(now - start) + 1, max(0, _days(end - now))


async def analyze(
    vacation: Vacation,
    expenses: Iterable[Expense],
    target_currency: str,
    converter: CurrencyService,
    now: datetime | None = None,
) -> BudgetAnalysis:
    now = now or _now_for(vacation.start_date)
    total_days, elapsed_days, remaining_days = trip_days(vacation, now)

    total_budget = await converter.convert(vacation.budget or 0.0, vacation.budget_currency, target_currency)
    total_expenses = 0.0
    for expense in expenses:
        total_expenses += await converter.convert(expense.amount_base, converter.base_currency, target_currency)

    remaining_budget = total_budget - total_expenses
    percentage_used = total_expenses / total_budget * 100 if total_budget > 0 else 0.0
    budget_per_day = total_budget / total_days
    avg_spent_per_day = total_expenses / elapsed_days if elapsed_days > 0 else 0.0
    remaining_budget_per_day = remaining_budget / remaining_days if remaining_days > 0 else 0.0
    projected_total_spend = avg_spent_per_day * total_days
    projected_surplus = total_budget - projected_total_spend
    is_over_budget = total_expenses > total_budget

    if now < vacation.start_date:
        status = FUTURE_TRIP
    elif is_over_budget or projected_surplus < 0:
        status = OVER_BUDGET
    elif avg_spent_per_day < budget_per_day * settings.under_budget_ratio:
        status = UNDER_BUDGET
    else:
        status = ON_TRACK

    return BudgetAnalysis(
        currency=target_currency.strip().upper(),
        total_budget=total_budget,
        total_expenses=total_expenses,
        remaining_budget=remaining_budget,
        percentage_used=percentage_used,
        total_days=total_days,
        elapsed_days=elapsed_days,
        remaining_days=remaining_days,
        budget_per_day=budget_per_day,
        avg_spent_per_day=avg_spent_per_day,
        remaining_budget_per_day=remaining_budget_per_day,
        projected_total_spend=projected_total_spend,
        projected_surplus=projected_surplus,
        is_over_budget=is_over_budget,
        status=status,
    )


async def spending_by_category(
    expenses: Iterable[Expense], target_currency: str, converter: CurrencyService
) -> dict[str, float]:
    totals = dict.fromkeys(EXPENSE_CATEGORIES, 0.0)
    for expense in expenses:
        totals[expense.category] += await converter.convert(
            expense.amount_base, converter.base_currency, target_currency
        )
    return totals


async def analyze_vacation(
    vacation_id: str,
    target_currency: str,
    cache: VacationCache,
    converter: CurrencyService,
    now: datetime | None = None,
) -> BudgetAnalysis | None:
    """Analyze a vacation by id, or return None if it no longer exists."""
    vacation = await cache.get(vacation_id)
    if vacation is None:
        return None
    expenses = await expense_service.get_expenses(vacation_id)
    return await analyze(vacation, expenses, target_currency, converter, now)
