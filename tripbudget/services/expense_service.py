import logging
import math
import uuid
from datetime import date, datetime, timezone

from tripbudget.currency import InvalidCurrencyError, validate_code
from tripbudget.db.database import get_db
from tripbudget.db.models import EXPENSE_CATEGORIES, Expense
from tripbudget.services.currency_service import CurrencyService

logger = logging.getLogger(__name__)

_UPDATABLE = frozenset({"amount", "currency", "category", "description", "expense_date", "image_url"})


class InvalidExpenseError(ValueError):
    pass


def _validate_amount(amount: float) -> float:
    amount = float(amount)
    if not math.isfinite(amount) or amount < 0:
        raise InvalidExpenseError(f"Amount must be a non-negative number, got {amount}")
    return amount


def _validate_category(category: str) -> str:
    normalized = category.strip().lower()
    if normalized not in EXPENSE_CATEGORIES:
        raise InvalidExpenseError(f"Unknown category '{category}'. Use one of: {', '.join(EXPENSE_CATEGORIES)}")
    return normalized


def _validate_currency(currency: str) -> str:
    try:
        return validate_code(currency)
    except InvalidCurrencyError as e:
        raise InvalidExpenseError(str(e)) from e


def _validate_expense_date(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if not isinstance(value, date):
        raise InvalidExpenseError(f"Expense date must be a date, got {value!r}")
    return value


def _row_to_expense(row) -> Expense:
    return Expense(
        id=row["id"],
        vacation_id=row["vacation_id"],
        amount=row["amount"],
        currency=row["currency"],
        amount_base=row["amount_base"],
        category=row["category"],
        description=row["description"],
        expense_date=date.fromisoformat(row["expense_date"]),
        image_url=row["image_url"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


async def add_expense(
    vacation_id: str,
    amount: float,
    currency: str,
    category: str,
    description: str,
    expense_date: date,
    converter: CurrencyService,
    image_url: str | None = None,
) -> Expense:
    amount = _validate_amount(amount)
    currency = _validate_currency(currency)
    category = _validate_category(category)
    expense_date = _validate_expense_date(expense_date)

    db = await get_db()
    cursor = await db.execute("SELECT 1 FROM vacations WHERE id = ?", (vacation_id,))
    if await cursor.fetchone() is None:
        raise InvalidExpenseError(f"Vacation '{vacation_id}' does not exist")

    amount_base = await converter.convert_to_base(amount, currency)
    expense = Expense(
        id=uuid.uuid4().hex,
        vacation_id=vacation_id,
        amount=amount,
        currency=currency,
        amount_base=amount_base,
        category=category,
        description=description.strip(),
        expense_date=expense_date,
        image_url=image_url or None,
        created_at=datetime.now(timezone.utc),
    )
    await db.execute(
        """INSERT INTO expenses
        (id, vacation_id, amount, currency, amount_base, category, description,
         expense_date, image_url, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            expense.id,
            expense.vacation_id,
            expense.amount,
            expense.currency,
            expense.amount_base,
            expense.category,
            expense.description,
            expense.expense_date.isoformat(),
            expense.image_url,
            expense.created_at.isoformat(),
        ),
    )
    await db.commit()
    logger.debug(
        "Added expense %.2f %s (%.2f %s)",
        amount, currency, amount_base, converter.base_currency,
        extra={"vacation_id": vacation_id, "expense_id": expense.id},
    )
    return expense


async def get_expenses(vacation_id: str) -> list[Expense]:
    db = await get_db()
    cursor = await db.execute(
        "SELECT * FROM expenses WHERE vacation_id = ? ORDER BY expense_date DESC, created_at DESC",
        (vacation_id,),
    )
    rows = await cursor.fetchall()
    return [_row_to_expense(row) for row in rows]


async def get_expense(expense_id: str) -> Expense | None:
    db = await get_db()
    cursor = await db.execute("SELECT * FROM expenses WHERE id = ?", (expense_id,))
    row = await cursor.fetchone()
    if row:
        return _row_to_expense(row)
    return None


async def count_expenses(vacation_id: str) -> int:
    db = await get_db()
    cursor = await db.execute("SELECT COUNT(*) FROM expenses WHERE vacation_id = ?", (vacation_id,))
    row = await cursor.fetchone()
    return row[0]


async def update_expense(expense_id: str, converter: CurrencyService, **fields) -> Expense | None:
    """Update an expense in place. Returns None when it does not exist.

    The base amount is recomputed only when amount or currency change.
    """
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise InvalidExpenseError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    existing = await get_expense(expense_id)
    if existing is None:
        return None

    amount = _validate_amount(fields.get("amount", existing.amount))
    currency = _validate_currency(fields.get("currency", existing.currency))
    category = _validate_category(fields.get("category", existing.category))
    expense_date = _validate_expense_date(fields.get("expense_date", existing.expense_date))
    amount_base = existing.amount_base
    if amount != existing.amount or currency != existing.currency:
        amount_base = await converter.convert_to_base(amount, currency)

    existing.amount = amount
    existing.currency = currency
    existing.amount_base = amount_base
    existing.category = category
    existing.description = fields.get("description", existing.description).strip()
    existing.expense_date = expense_date
    existing.image_url = fields.get("image_url", existing.image_url) or None

    db = await get_db()
    await db.execute(
        """UPDATE expenses SET amount = ?, currency = ?, amount_base = ?, category = ?,
        description = ?, expense_date = ?, image_url = ? WHERE id = ?""",
        (
            existing.amount,
            existing.currency,
            existing.amount_base,
            existing.category,
            existing.description,
            existing.expense_date.isoformat(),
            existing.image_url,
            expense_id,
        ),
    )
    await db.commit()
    logger.debug("Updated expense", extra={"vacation_id": existing.vacation_id, "expense_id": expense_id})
    return existing


async def delete_expense(expense_id: str) -> bool:
    db = await get_db()
    cursor = await db.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
    await db.commit()
    return cursor.rowcount > 0
