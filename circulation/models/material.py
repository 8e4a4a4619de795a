from sqlalchemy import Column, String, Integer, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base, UTCDateTime
from circulation.models.enums import MaterialType, CopyCondition, CopyStatus, check_in
from circulation.utils.timezone import isoformat

class Material(Base):
    __tablename__ = "material"

    material_id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    material_type = Column(String(50), default=MaterialType.BOOK.value, nullable=False)
    author = Column(String(255), nullable=True)
    isbn = Column(String(20), unique=True, nullable=True)
    publisher = Column(String(255), nullable=True)
    publication_year = Column(Integer, nullable=True)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    max_loan_days = Column(Integer, nullable=True)  # Overrides the configured default loan period
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    copies = relationship("MaterialCopy", back_populates="material", cascade="all, delete-orphan")
    reservations = relationship("Reservation", back_populates="material")

    __table_args__ = (
        CheckConstraint(check_in("material_type", MaterialType), name="chk_material_type"),
    )

    def to_dict(self):
        copies = self.copies or []
        return {
            "id": str(self.material_id),
            "title": self.title,
            "materialType": self.material_type,
            "author": self.author,
            "isbn": self.isbn,
            "publisher": self.publisher,
            "publicationYear": self.publication_year,
            "category": self.category,
            "description": self.description,
            "maxLoanDays": self.max_loan_days,
            "totalCopies": len([c for c in copies if c.status != CopyStatus.REMOVED.value]),
            "availableCopies": len([c for c in copies if c.status == CopyStatus.AVAILABLE.value]),
        }

class MaterialCopy(Base):
    __tablename__ = "material_copy"

    copy_id = Column(Integer, primary_key=True, autoincrement=True)
    material_id = Column(Integer, ForeignKey("material.material_id", ondelete="CASCADE"), nullable=False, index=True)
    condition = Column(String(50), default=CopyCondition.GOOD.value, nullable=False)
    status = Column(String(50), default=CopyStatus.AVAILABLE.value, nullable=False, index=True)
    location = Column(String(100), nullable=True)
    barcode = Column(String(255), unique=True, nullable=True, index=True)
    catalog_code = Column(String(255), nullable=True)
    acquisition_date = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    material = relationship("Material", back_populates="copies")
    loans = relationship("Loan", back_populates="copy")

    __table_args__ = (
        CheckConstraint(check_in("condition", CopyCondition), name="chk_copy_condition"),
        CheckConstraint(check_in("status", CopyStatus), name="chk_copy_status"),
    )

    def to_dict(self, include_material: bool = True):
        data = {
            "id": str(self.copy_id),
            "materialId": str(self.material_id),
            "condition": self.condition,
            "status": self.status,
            "location": self.location,
            "barcode": self.barcode,
            "catalogCode": self.catalog_code,
            "acquisitionDate": isoformat(self.acquisition_date),
        }
        if include_material:
            data["material"] = {
                "id": str(self.material.material_id),
                "title": self.material.title,
                "materialType": self.material.material_type,
            } if self.material else None
        return data
