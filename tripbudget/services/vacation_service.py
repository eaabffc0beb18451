import logging
import math
import sqlite3
import uuid
from dataclasses import asdict, replace
from datetime import date, datetime, time, timezone
from typing import Any

from tripbudget.config import settings
from tripbudget.currency import InvalidCurrencyError, validate_code
from tripbudget.db.database import get_db
from tripbudget.db.models import Vacation, VacationDraft

logger = logging.getLogger(__name__)

EDITABLE_FIELDS: frozenset[str] = frozenset({
    "destination", "country", "hotel", "start_date", "end_date",
    "budget", "budget_currency", "currency", "image_url",
})


class InvalidVacationError(ValueError):
    pass


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    raise InvalidVacationError(f"Expected a date or datetime, got {type(value).__name__}")


def validate_draft(draft: VacationDraft) -> VacationDraft:
    """Normalize a draft and enforce the vacation invariants.

    Budget must be a non-negative finite number when present and the trip
    may not end before it starts. Same-instant start and end are accepted
    as a same-day trip.
    """
    destination = draft.destination.strip()
    if not destination:
        raise InvalidVacationError("Destination is required")

    start = _as_datetime(draft.start_date)
    end = _as_datetime(draft.end_date)
    try:
        if end < start:
            raise InvalidVacationError("Trip end must not be before its start")
    except TypeError as e:
        raise InvalidVacationError("Start and end must both be timezone-aware or both naive") from e

    budget = draft.budget
    if budget is not None:
        budget = float(budget)
        if not math.isfinite(budget) or budget < 0:
            raise InvalidVacationError(f"Budget must be a non-negative amount, got {draft.budget}")

    try:
        budget_currency = validate_code(draft.budget_currency or settings.base_currency)
        currency = validate_code(draft.currency) if draft.currency else None
    except InvalidCurrencyError as e:
        raise InvalidVacationError(str(e)) from e

    return VacationDraft(
        destination=destination,
        country=draft.country.strip(),
        hotel=draft.hotel.strip(),
        start_date=start,
        end_date=end,
        budget=budget,
        budget_currency=budget_currency,
        currency=currency,
        image_url=draft.image_url or None,
    )


def _row_to_vacation(row) -> Vacation:
    return Vacation(
        id=row["id"],
        destination=row["destination"],
        country=row["country"],
        hotel=row["hotel"],
        start_date=datetime.fromisoformat(row["start_date"]),
        end_date=datetime.fromisoformat(row["end_date"]),
        budget=row["budget"],
        budget_currency=row["budget_currency"],
        currency=row["currency"],
        image_url=row["image_url"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _draft_from(vacation: Vacation) -> VacationDraft:
    return VacationDraft(**{name: getattr(vacation, name) for name in EDITABLE_FIELDS})


class SQLiteVacationStore:
    """Durable vacation repository on the shared aiosqlite connection."""

    async def find_all(self) -> list[Vacation]:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM vacations ORDER BY start_date DESC, created_at DESC")
        rows = await cursor.fetchall()
        return [_row_to_vacation(row) for row in rows]

    async def find_by_id(self, vacation_id: str) -> Vacation | None:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM vacations WHERE id = ?", (vacation_id,))
        row = await cursor.fetchone()
        if row:
            return _row_to_vacation(row)
        return None

    async def create(self, draft: VacationDraft) -> Vacation:
        clean = validate_draft(draft)
        now = datetime.now(timezone.utc)
        vacation = Vacation(id=uuid.uuid4().hex, created_at=now, updated_at=now, **asdict(clean))
        db = await get_db()
        await db.execute(
            """INSERT INTO vacations
            (id, destination, country, hotel, start_date, end_date, budget,
             budget_currency, currency, image_url, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                vacation.id,
                vacation.destination,
                vacation.country,
                vacation.hotel,
                vacation.start_date.isoformat(),
                vacation.end_date.isoformat(),
                vacation.budget,
                vacation.budget_currency,
                vacation.currency,
                vacation.image_url,
                now.isoformat(),
                now.isoformat(),
            ),
        )
        await db.commit()
        logger.info("Created vacation to %s", vacation.destination, extra={"vacation_id": vacation.id})
        return vacation

    async def update(self, vacation_id: str, patch: dict[str, Any]) -> Vacation | None:
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise InvalidVacationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        current = await self.find_by_id(vacation_id)
        if current is None:
            return None

        clean = validate_draft(replace(_draft_from(current), **patch))
        now = datetime.now(timezone.utc)
        db = await get_db()
        cursor = await db.execute(
            """UPDATE vacations SET destination = ?, country = ?, hotel = ?, start_date = ?,
            end_date = ?, budget = ?, budget_currency = ?, currency = ?, image_url = ?, updated_at = ?
            WHERE id = ?""",
            (
                clean.destination,
                clean.country,
                clean.hotel,
                clean.start_date.isoformat(),
                clean.end_date.isoformat(),
                clean.budget,
                clean.budget_currency,
                clean.currency,
                clean.image_url,
                now.isoformat(),
                vacation_id,
            ),
        )
        await db.commit()
        if cursor.rowcount == 0:
            return None
        logger.info("Updated vacation", extra={"vacation_id": vacation_id})
        return Vacation(id=vacation_id, created_at=current.created_at, updated_at=now, **asdict(clean))

    async def delete(self, vacation_id: str) -> bool:
        """Delete a vacation together with all of its expenses."""
        db = await get_db()
        try:
            expenses = await db.execute("DELETE FROM expenses WHERE vacation_id = ?", (vacation_id,))
            cursor = await db.execute("DELETE FROM vacations WHERE id = ?", (vacation_id,))
            await db.commit()
        except sqlite3.Error:
            await db.rollback()
            raise
        if cursor.rowcount == 0:
            return False
        logger.info(
            "Deleted vacation and %d expenses", expenses.rowcount, extra={"vacation_id": vacation_id}
        )
        return True
