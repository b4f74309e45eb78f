from datetime import timezone

from sqlalchemy import DateTime, TypeDecorator

from notifier.utils.datetime_utils import to_utc


class UTCDateTime(TypeDecorator):
    """Custom type that stores instants as UTC and always hands back timezone-aware UTC datetimes."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert Python value to database value."""
        if value is None:
            return value
        value = to_utc(value)
        if dialect.name == "sqlite":
            # SQLite stores text; keep a single naive UTC representation so ordering works
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        """Convert database value to Python value (always aware UTC)."""
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
