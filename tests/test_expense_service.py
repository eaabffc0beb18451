from datetime import date, datetime

import pytest

from tripbudget.db.models import VacationDraft
from tripbudget.services.expense_service import (
    InvalidExpenseError,
    add_expense,
    count_expenses,
    delete_expense,
    get_expense,
    get_expenses,
    update_expense,
)
from tripbudget.services.vacation_service import SQLiteVacationStore


async def _vacation_id() -> str:
    vacation = await SQLiteVacationStore().create(
        VacationDraft(
            destination="Tokyo",
            country="Japan",
            hotel="Shinjuku Inn",
            start_date=datetime(2025, 4, 1),
            end_date=datetime(2025, 4, 8),
            budget=3000.0,
            budget_currency="CHF",
        )
    )
    return vacation.id


async def test_add_converts_to_base_at_write_time(converter):
    vid = await _vacation_id()
    expense = await add_expense(vid, 90.0, "eur", "Food", " Ramen ", date(2025, 4, 2), converter)
    assert expense.currency == "EUR"
    assert expense.category == "food"
    assert expense.description == "Ramen"
    assert expense.amount_base == pytest.approx(100.0)

    stored = await get_expense(expense.id)
    assert stored.amount_base == pytest.approx(100.0)
    assert stored.expense_date == date(2025, 4, 2)


async def test_base_amount_is_not_recomputed_on_read(converter):
    vid = await _vacation_id()
    expense = await add_expense(vid, 90.0, "EUR", "food", "", date(2025, 4, 2), converter)
    await converter.set_manual_rate("EUR", 0.45)
    assert (await get_expense(expense.id)).amount_base == pytest.approx(100.0)


async def test_get_expenses_scoped_and_ordered(converter):
    vid = await _vacation_id()
    other = await _vacation_id()
    await add_expense(vid, 10, "CHF", "transport", "bus", date(2025, 4, 1), converter)
    await add_expense(vid, 20, "CHF", "food", "lunch", date(2025, 4, 3), converter)
    await add_expense(other, 99, "CHF", "other", "x", date(2025, 4, 3), converter)

    rows = await get_expenses(vid)
    assert [e.description for e in rows] == ["lunch", "bus"]
    assert await count_expenses(vid) == 2
    assert await get_expenses("missing") == []


async def test_datetime_expense_date_stored_as_date(converter):
    vid = await _vacation_id()
    expense = await add_expense(vid, 10, "CHF", "food", "", datetime(2025, 4, 2, 12), converter)
    assert expense.expense_date == date(2025, 4, 2)
    assert [e.expense_date for e in await get_expenses(vid)] == [date(2025, 4, 2)]

    updated = await update_expense(expense.id, converter, expense_date=datetime(2025, 4, 5, 18, 30))
    assert updated.expense_date == date(2025, 4, 5)
    assert (await get_expense(expense.id)).expense_date == date(2025, 4, 5)


@pytest.mark.parametrize("bad_date", ["2025-04-02", None, 20250402])
async def test_non_date_expense_date_rejected(converter, bad_date):
    vid = await _vacation_id()
    with pytest.raises(InvalidExpenseError):
        await add_expense(vid, 10, "CHF", "food", "", bad_date, converter)
    expense = await add_expense(vid, 10, "CHF", "food", "", date(2025, 4, 2), converter)
    with pytest.raises(InvalidExpenseError):
        await update_expense(expense.id, converter, expense_date=bad_date)
    assert (await get_expense(expense.id)).expense_date == date(2025, 4, 2)


async def test_zero_amount_allowed(converter):
    vid = await _vacation_id()
    expense = await add_expense(vid, 0, "CHF", "other", "free museum", date(2025, 4, 2), converter)
    assert expense.amount_base == 0


@pytest.mark.parametrize(
    "amount, currency, category",
    [(-1, "CHF", "food"), (10, "C", "food"), (10, "CHF", "groceries"), (float("inf"), "CHF", "food")],
)
async def test_add_rejects_invalid(converter, amount, currency, category):
    vid = await _vacation_id()
    with pytest.raises(InvalidExpenseError):
        await add_expense(vid, amount, currency, category, "", date(2025, 4, 2), converter)


async def test_add_rejects_unknown_vacation(converter):
    with pytest.raises(InvalidExpenseError):
        await add_expense("missing", 10, "CHF", "food", "", date(2025, 4, 2), converter)


async def test_update_reconverts_on_amount_change(converter):
    vid = await _vacation_id()
    expense = await add_expense(vid, 90.0, "EUR", "food", "dinner", date(2025, 4, 2), converter)

    updated = await update_expense(expense.id, converter, amount=45.0)
    assert updated.amount_base == pytest.approx(50.0)

    updated = await update_expense(expense.id, converter, currency="USD", amount=110.0)
    assert updated.amount_base == pytest.approx(100.0)

    updated = await update_expense(expense.id, converter, description="late dinner", category="entertainment")
    assert updated.amount_base == pytest.approx(100.0)
    assert (await get_expense(expense.id)).category == "entertainment"


async def test_update_cannot_move_expense(converter):
    vid = await _vacation_id()
    expense = await add_expense(vid, 10, "CHF", "food", "", date(2025, 4, 2), converter)
    with pytest.raises(InvalidExpenseError):
        await update_expense(expense.id, converter, vacation_id="other")


async def test_update_missing_returns_none(converter):
    assert await update_expense("missing", converter, amount=1) is None


async def test_delete_expense(converter):
    vid = await _vacation_id()
    expense = await add_expense(vid, 10, "CHF", "food", "", date(2025, 4, 2), converter)
    assert await delete_expense(expense.id) is True
    assert await delete_expense(expense.id) is False
    assert await get_expense(expense.id) is None
