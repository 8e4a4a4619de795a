from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from circulation.models.enums import CopyCondition

class LoanCreate(BaseModel):
    member_id: int = Field(..., alias="memberId")
    copy_id: int = Field(..., alias="copyId")
    loan_date: Optional[datetime] = Field(None, alias="loanDate")
    notes: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True

class LoanReturn(BaseModel):
    return_date: Optional[datetime] = Field(None, alias="returnDate")
    condition: Optional[CopyCondition] = None

    class Config:
        populate_by_name = True

class LoanResponse(BaseModel):
    id: str
    memberId: str
    copyId: str
    processedBy: Optional[str] = None
    loanDate: datetime
    dueDate: datetime
    returnDate: Optional[datetime] = None
    renewalCount: int
    status: str
    notes: Optional[str] = None
    copy_: Optional[dict] = Field(None, alias="copy")  # 'copy' would shadow BaseModel.copy()
    member: Optional[dict] = None
    fines: List[dict] = []

    class Config:
        populate_by_name = True

class LoanPage(BaseModel):
    loans: List[LoanResponse]
    total: int
    page: int
    pageSize: int
    totalPages: int

class BatchResult(BaseModel):
    updated: int
    loanIds: List[str]

class LoanStats(BaseModel):
    activeLoans: int
    overdueLoans: int
    totalFines: float
    unpaidFines: float
    canBorrow: bool
    reasons: Optional[List[str]] = None

class LoanConfigurationUpdate(BaseModel):
    default_loan_days: Optional[int] = Field(None, alias="defaultLoanDays", ge=1)
    max_active_loans: Optional[int] = Field(None, alias="maxActiveLoans", ge=1)
    max_renewals: Optional[int] = Field(None, alias="maxRenewals", ge=0)
    grace_period_days: Optional[int] = Field(None, alias="gracePeriodDays", ge=0)
    daily_fine_amount: Optional[float] = Field(None, alias="dailyFineAmount", ge=0)
    allow_loans_with_fines: Optional[bool] = Field(None, alias="allowLoansWithFines")
    max_unpaid_fines: Optional[float] = Field(None, alias="maxUnpaidFines", ge=0)
    max_overdue_loans: Optional[int] = Field(None, alias="maxOverdueLoans", ge=0)
    reservation_hold_days: Optional[int] = Field(None, alias="reservationHoldDays", ge=1)
    reject_fine_overpayment: Optional[bool] = Field(None, alias="rejectFineOverpayment")

    class Config:
        populate_by_name = True

class LoanConfigurationResponse(BaseModel):
    id: str
    defaultLoanDays: int
    maxActiveLoans: int
    maxRenewals: int
    gracePeriodDays: int
    dailyFineAmount: float
    allowLoansWithFines: bool
    maxUnpaidFines: float
    maxOverdueLoans: int
    reservationHoldDays: int
    rejectFineOverpayment: bool
