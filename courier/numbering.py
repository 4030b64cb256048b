# courier/numbering.py
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Tuple

import structlog
from sqlalchemy import case, select

from courier.models import db, SequenceCounter

logger = structlog.get_logger(__name__)


# =============================================================================
# Sequences and formats
# =============================================================================

SEQUENCE_PREFIXES = {
    "receipt": "DRT",
    "trip": "TRP",
    "payment": "ADV",
}

# Read-only: older trips were numbered TRIP-DDMMYYYY-NNN.
LEGACY_PREFIXES = {
    "TRIP": "trip",
}

_UPSERT_DIALECTS = ("sqlite", "postgresql")

_NUMBER_RE = re.compile(r"^(?P<prefix>[A-Z]{3,4})-(?P<date>\d{8})-(?P<serial>\d{3,})$")


def format_serial(prefix: str, today: date, serial: int) -> str:
    """PREFIX-DDMMYYYY-NNN, NNN zero-padded to 3 digits."""
    return f"{prefix}-{today.strftime('%d%m%Y')}-{serial:03d}"


def parse_serial(number: str) -> Tuple[str, date, int]:
    """
    Split a generated number into (sequence name, date, serial).

    Accepts the legacy TRIP- prefix so old trip numbers stay readable.
    Raises ValueError for anything else.
    """
    m = _NUMBER_RE.match((number or "").strip())
    if not m:
        raise ValueError(f"Not a sequence number: {number!r}")

    prefix = m.group("prefix")
    sequence = None
    for name, p in SEQUENCE_PREFIXES.items():
        if p == prefix:
            sequence = name
            break
    if sequence is None:
        sequence = LEGACY_PREFIXES.get(prefix)
    if sequence is None:
        raise ValueError(f"Unknown sequence prefix in {number!r}")

    try:
        d = datetime.strptime(m.group("date"), "%d%m%Y").date()
    except ValueError as exc:
        raise ValueError(f"Invalid date in {number!r}") from exc

    return sequence, d, int(m.group("serial"))


# =============================================================================
# Counter advance
# =============================================================================

def _advance_upsert(session, name: str, today: date) -> int:
    """
    Create-if-absent, else increment, as one statement:

        INSERT ... ON CONFLICT (name) DO UPDATE
           SET value = CASE WHEN last_date = :today THEN value + 1 ELSE 1 END,
               last_date = :today
        RETURNING value

    The conflicting row is locked for the duration of the statement, so
    concurrent callers on the same sequence are serialised by the store.
    """
    if session.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert

    table = SequenceCounter.__table__
    stmt = insert(table).values(name=name, last_date=today, value=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.name],
        set_={
            "value": case((table.c.last_date == today, table.c.value + 1), else_=1),
            "last_date": today,
        },
    ).returning(table.c.value)

    return session.execute(stmt).scalar_one()


def _advance_locked(session, name: str, today: date) -> int:
    """
    Dialects without INSERT ... ON CONFLICT: lock the row with
    SELECT ... FOR UPDATE, then advance it in the same transaction.

    Two callers racing to create a missing row get an IntegrityError on
    the loser; run ensure_counters() at bootstrap to avoid that window.
    """
    counter = session.execute(
        select(SequenceCounter)
        .where(SequenceCounter.name == name)
        .with_for_update()
    ).scalar_one_or_none()

    if counter is None:
        counter = SequenceCounter(name=name, last_date=today, value=1)
        session.add(counter)
        session.flush()
        return 1

    if counter.last_date == today:
        counter.value += 1
    else:
        counter.value = 1
        counter.last_date = today
    session.flush()
    return counter.value


def next_serial(
    name: str,
    today: Optional[date] = None,
    session=None,
) -> Tuple[int, str]:
    """
    Advance sequence `name` for `today` and return (serial, formatted number).

    Runs inside the caller's transaction and does not commit: the number is
    only consumed when the caller commits, and a rollback returns it.
    """
    if name not in SEQUENCE_PREFIXES:
        raise ValueError(f"Unknown sequence: {name!r}")

    today = today or date.today()
    session = session or db.session

    if session.get_bind().dialect.name in _UPSERT_DIALECTS:
        serial = _advance_upsert(session, name, today)
    else:
        serial = _advance_locked(session, name, today)

    formatted = format_serial(SEQUENCE_PREFIXES[name], today, serial)
    logger.debug("serial_allocated", sequence=name, serial=serial, number=formatted)
    return serial, formatted


def ensure_counters(today: Optional[date] = None) -> int:
    """
    Bootstrap one counter row per sequence (value 0). Existing rows are
    left untouched. Returns the number of rows created.
    """
    today = today or date.today()
    created = 0
    for name in SEQUENCE_PREFIXES:
        if db.session.get(SequenceCounter, name) is None:
            db.session.add(SequenceCounter(name=name, last_date=today, value=0))
            created += 1
    db.session.commit()
    return created
