from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from circulation.models.enums import MaterialType, CopyCondition, CopyStatus

class MaterialBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    material_type: MaterialType = MaterialType.BOOK
    author: Optional[str] = Field(None, max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    publisher: Optional[str] = Field(None, max_length=255)
    publication_year: Optional[int] = None
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    max_loan_days: Optional[int] = Field(None, ge=1)

class MaterialCreate(MaterialBase):
    pass

class MaterialResponse(BaseModel):
    id: str
    title: str
    materialType: str
    author: Optional[str] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    publicationYear: Optional[int] = None
    category: Optional[str] = None
    description: Optional[str] = None
    maxLoanDays: Optional[int] = None
    totalCopies: int
    availableCopies: int

class CopyCreate(BaseModel):
    material_id: int = Field(..., alias="materialId")
    condition: CopyCondition = CopyCondition.GOOD
    status: CopyStatus = CopyStatus.AVAILABLE
    location: Optional[str] = Field(None, max_length=100)
    barcode: Optional[str] = Field(None, max_length=255)
    catalog_code: Optional[str] = Field(None, alias="catalogCode", max_length=255)
    acquisition_date: Optional[datetime] = Field(None, alias="acquisitionDate")

    class Config:
        populate_by_name = True

class CopyUpdate(BaseModel):
    condition: Optional[CopyCondition] = None
    status: Optional[CopyStatus] = None
    location: Optional[str] = Field(None, max_length=100)
    barcode: Optional[str] = Field(None, max_length=255)
    catalog_code: Optional[str] = Field(None, alias="catalogCode", max_length=255)

    class Config:
        populate_by_name = True

class CopyResponse(BaseModel):
    id: str
    materialId: str
    condition: str
    status: str
    location: Optional[str] = None
    barcode: Optional[str] = None
    catalogCode: Optional[str] = None
    acquisitionDate: Optional[datetime] = None
    material: Optional[dict] = None
