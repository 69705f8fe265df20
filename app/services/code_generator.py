"""
Demande Sequence Number Generator

Generates the human-readable identifier of a demande:

  DEM-{YEAR}-{SEQ:06d}   (e.g. DEM-2026-000001, DEM-2026-000042)

The counter restarts at 1 every calendar year and only ever grows: it is
derived from the highest number issued so far for the year, and demandes
are never physically deleted. Assigned once at creation, never on update.
"""

import re
from datetime import datetime, timezone

from app.models import db
from app.models.demande import Demande

SEQUENCE_PREFIX = "DEM"
SEQUENCE_PATTERN = re.compile(r"^DEM-(\d{4})-(\d{6})$")


def format_sequence_number(year: int, counter: int) -> str:
    return f"{SEQUENCE_PREFIX}-{year:04d}-{counter:06d}"


def is_valid_sequence_number(value: str) -> bool:
    return bool(value) and SEQUENCE_PATTERN.match(value) is not None


def generate_sequence_number(year: int | None = None) -> str:
    """Generate the next sequence number for ``year`` (default: current UTC year)."""
    if year is None:
        year = datetime.now(timezone.utc).year
    prefix = f"{SEQUENCE_PREFIX}-{year:04d}-"

    # Zero-padded counters sort lexicographically.
    last = (
        db.session.query(db.func.max(Demande.sequence_number))
        .filter(Demande.sequence_number.like(f"{prefix}%"))
        .scalar()
    )
    counter = 1
    if last:
        match = SEQUENCE_PATTERN.match(last)
        if match:
            counter = int(match.group(2)) + 1
    return format_sequence_number(year, counter)
