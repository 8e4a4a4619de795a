from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from circulation.models.enums import ReservationStatus

class ReservationCreate(BaseModel):
    member_id: Optional[int] = Field(None, alias="memberId")  # Ignored for members: always themselves
    material_id: int = Field(..., alias="materialId")
    notes: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True

class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus
    copy_id: Optional[int] = Field(None, alias="copyId")
    expiration_date: Optional[datetime] = Field(None, alias="expirationDate")
    notes: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True

class ReservationResponse(BaseModel):
    id: str
    memberId: str
    materialId: str
    copyId: Optional[str] = None
    loanId: Optional[str] = None
    status: str
    queuePosition: Optional[int] = None
    reservationDate: datetime
    expirationDate: Optional[datetime] = None
    pickedUpAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None
    notes: Optional[str] = None
    material: Optional[dict] = None
    copy_: Optional[dict] = Field(None, alias="copy")  # 'copy' would shadow BaseModel.copy()
    loan: Optional[dict] = None

    class Config:
        populate_by_name = True

class Pagination(BaseModel):
    page: int
    pageSize: int
    total: int
    totalPages: int

class ReservationPage(BaseModel):
    reservations: List[ReservationResponse]
    pagination: Pagination

class ReservationBatchResult(BaseModel):
    updated: int
    reservationIds: List[str]

class ReservationStats(BaseModel):
    activeReservations: int
    readyForPickup: int
    totalReservations: int
