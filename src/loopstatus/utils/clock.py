from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

# Stand-in for "no upload yet"; compares below every real timestamp
DISTANT_PAST = datetime.min.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(date: Optional[datetime]) -> datetime:
    """Return ``date`` as a timezone-aware datetime (naive values are taken as UTC)."""
    if date is None:
        return utcnow()
    if date.tzinfo is None:
        return date.replace(tzinfo=timezone.utc)
    return date
