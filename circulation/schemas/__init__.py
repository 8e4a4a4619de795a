from .auth import UserCreate, UserLogin, PasswordChange, UserResponse, Token
from .material import (
    MaterialBase, MaterialCreate, MaterialResponse,
    CopyCreate, CopyUpdate, CopyResponse
)
from .loan import (
    LoanCreate, LoanReturn, LoanResponse, LoanPage, BatchResult, LoanStats,
    LoanConfigurationUpdate, LoanConfigurationResponse
)
from .reservation import (
    ReservationCreate, ReservationStatusUpdate, ReservationResponse,
    ReservationPage, ReservationBatchResult, ReservationStats
)
from .fine import (
    FineCreate, FineUpdate, FinePayment, FineWaiver,
    FineResponse, FinePage, FineStats
)
from .notification import NotificationResponse, UnreadCount

__all__ = [
    "UserCreate", "UserLogin", "PasswordChange", "UserResponse", "Token",
    "MaterialBase", "MaterialCreate", "MaterialResponse",
    "CopyCreate", "CopyUpdate", "CopyResponse",
    "LoanCreate", "LoanReturn", "LoanResponse", "LoanPage", "BatchResult", "LoanStats",
    "LoanConfigurationUpdate", "LoanConfigurationResponse",
    "ReservationCreate", "ReservationStatusUpdate", "ReservationResponse",
    "ReservationPage", "ReservationBatchResult", "ReservationStats",
    "FineCreate", "FineUpdate", "FinePayment", "FineWaiver",
    "FineResponse", "FinePage", "FineStats",
    "NotificationResponse", "UnreadCount",
]
