from .user import User
from .material import Material, MaterialCopy
from .loan import Loan, LoanConfiguration
from .reservation import Reservation
from .fine import Fine
from .notification import Notification

__all__ = [
    "User",
    "Material",
    "MaterialCopy",
    "Loan",
    "LoanConfiguration",
    "Reservation",
    "Fine",
    "Notification",
]
