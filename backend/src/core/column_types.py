"""
Custom SQLAlchemy column types.

All instants in the booking engine are stored and handled as UTC. PostgreSQL
keeps the offset in TIMESTAMP WITH TIME ZONE columns, but SQLite drops it and
hands back naive values, so this type normalizes both directions.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import TIMESTAMP
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware timestamp that always round-trips as UTC.

    Naive datetimes are interpreted as UTC when written and when read.
    """

    impl = TIMESTAMP(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            # SQLite stores text; keep a single canonical form so comparisons sort correctly
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Any, dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
