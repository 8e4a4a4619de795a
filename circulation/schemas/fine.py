from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from circulation.models.enums import FineStatus, FineType

class FineCreate(BaseModel):
    loan_id: int = Field(..., alias="loanId")
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=255)
    fine_type: FineType = Field(FineType.OTHER, alias="fineType")
    notes: Optional[str] = None

    class Config:
        populate_by_name = True

class FineUpdate(BaseModel):
    """Dashboard update; paidAmount is the new cumulative total paid."""
    paid_amount: Optional[float] = Field(None, alias="paidAmount", ge=0)
    status: Optional[FineStatus] = None
    paid_date: Optional[datetime] = Field(None, alias="paidDate")
    notes: Optional[str] = None

    class Config:
        populate_by_name = True

class FinePayment(BaseModel):
    amount: float = Field(..., gt=0)
    paid_date: Optional[datetime] = Field(None, alias="paidDate")

    class Config:
        populate_by_name = True

class FineWaiver(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)

class FineResponse(BaseModel):
    id: str
    loanId: str
    fineType: str
    amount: float
    paidAmount: float
    status: str
    reason: str
    notes: Optional[str] = None
    issuedBy: Optional[str] = None
    paidDate: Optional[datetime] = None
    createdAt: Optional[datetime] = None
    memberId: Optional[str] = None
    copyId: Optional[str] = None

class FinePage(BaseModel):
    fines: List[FineResponse]
    total: int
    page: int
    pageSize: int
    totalPages: int

class FineStats(BaseModel):
    totalFines: float
    unpaidFines: float
    fineCount: int
