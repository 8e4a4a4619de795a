from datetime import datetime
from typing import Optional
import pytz
from circulation.config import settings

LIBRARY_TZ = pytz.timezone(settings.timezone)

def now_local() -> datetime:
    """Get current datetime in the library's timezone."""
    return datetime.now(LIBRARY_TZ)

def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach the library timezone to naive datetimes coming from clients."""
    if value is None or value.tzinfo is not None:
        return value
    return LIBRARY_TZ.localize(value)

def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
