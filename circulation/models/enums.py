import enum


class Role(str, enum.Enum):
    MEMBER = "MEMBER"
    LIBRARIAN = "LIBRARIAN"


class AccountState(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class MaterialType(str, enum.Enum):
    BOOK = "BOOK"
    MAGAZINE = "MAGAZINE"
    DVD = "DVD"
    AUDIOBOOK = "AUDIOBOOK"
    OTHER = "OTHER"


class CopyCondition(str, enum.Enum):
    NEW = "NEW"
    GOOD = "GOOD"
    FAIR = "FAIR"
    DAMAGED = "DAMAGED"
    LOST = "LOST"


class CopyStatus(str, enum.Enum):
    """Physical copy status.

    BORROWED and RESERVED are only ever set by the circulation services:
    BORROWED while exactly one open loan holds the copy, RESERVED while a
    READY reservation holds it.
    """
    AVAILABLE = "AVAILABLE"
    BORROWED = "BORROWED"
    RESERVED = "RESERVED"
    UNDER_REPAIR = "UNDER_REPAIR"
    REMOVED = "REMOVED"


class LoanStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"


class ReservationStatus(str, enum.Enum):
    """
    Typical flow:
        PENDING -> READY -> PICKED_UP
        READY -> EXPIRED (hold window elapsed)
        PENDING/READY -> CANCELLED
    """
    PENDING = "PENDING"
    READY = "READY"
    PICKED_UP = "PICKED_UP"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"

    @classmethod
    def open_statuses(cls):
        return (cls.PENDING.value, cls.READY.value)


class FineStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    WAIVED = "WAIVED"


class FineType(str, enum.Enum):
    OVERDUE = "OVERDUE"
    DAMAGE = "DAMAGE"
    LOSS = "LOSS"
    OTHER = "OTHER"


class NotificationType(str, enum.Enum):
    RESERVATION_READY = "RESERVATION_READY"
    RESERVATION_EXPIRED = "RESERVATION_EXPIRED"
    FINE_ISSUED = "FINE_ISSUED"
    LOAN_RETURNED = "LOAN_RETURNED"


def check_in(column: str, enum_cls) -> str:
    """SQL fragment for a CheckConstraint restricting a column to an enum."""
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"
