import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from circulation.database import transaction
from circulation.models.enums import CopyStatus, MaterialType
from circulation.models.material import Material, MaterialCopy
from circulation.services.copies import claim_copy, get_copy, is_lendable
from circulation.services.errors import ConflictError, NotFoundError, ValidationError
from circulation.services.queue import ReservationQueue
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)

# Statuses a librarian may set by hand; the rest belong to circulation
MANUAL_COPY_STATUSES = (CopyStatus.AVAILABLE, CopyStatus.UNDER_REPAIR, CopyStatus.REMOVED)

def get_material(db: Session, material_id: int) -> Material:
    material = db.query(Material).filter(Material.material_id == material_id).first()
    if not material:
        raise NotFoundError(f"Material with ID {material_id} not found")
    return material

def list_materials(db: Session, search: Optional[str] = None, material_type: Optional[MaterialType] = None,
                   category: Optional[str] = None) -> List[Material]:
    query = db.query(Material)
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Material.title.ilike(search_term),
                Material.author.ilike(search_term),
                Material.isbn.ilike(search_term)
            )
        )
    if material_type:
        query = query.filter(Material.material_type == material_type.value)
    if category:
        query = query.filter(Material.category == category)
    return query.order_by(Material.title).all()

def create_material(db: Session, data: dict) -> Material:
    try:
        with transaction(db):
            material = Material(**data)
            db.add(material)
    except IntegrityError:
        raise ConflictError("A material with this ISBN already exists")
    db.refresh(material)
    logger.info(f"Material {material.material_id} created: {material.title}")
    return material

def list_copies(db: Session, material_id: int) -> List[MaterialCopy]:
    get_material(db, material_id)
    return db.query(MaterialCopy).filter(
        MaterialCopy.material_id == material_id
    ).order_by(MaterialCopy.copy_id).all()

def create_copy(db: Session, data: dict, now: Optional[datetime] = None) -> MaterialCopy:
    status = data.pop("status", CopyStatus.AVAILABLE)
    if status not in MANUAL_COPY_STATUSES:
        raise ValidationError(
            f"New copies cannot start as {status.value}",
            errors=[{"field": "status", "message": "must be AVAILABLE, UNDER_REPAIR or REMOVED"}],
        )
    acquisition_date = data.pop("acquisition_date", None) or now or now_local()
    fields = {k: (v.value if hasattr(v, "value") else v) for k, v in data.items()}
    try:
        with transaction(db):
            get_material(db, fields["material_id"])
            copy = MaterialCopy(status=status.value, acquisition_date=acquisition_date, **fields)
            db.add(copy)
            db.flush()
            if copy.status == CopyStatus.AVAILABLE.value:
                ReservationQueue(db).promote_next(copy.material_id, copy.copy_id, now=now)
    except IntegrityError:
        raise ConflictError("A copy with this barcode already exists")
    db.refresh(copy)
    logger.info(f"Copy {copy.copy_id} added to material {copy.material_id}")
    return copy

def update_copy(db: Session, copy_id: int, changes: dict, now: Optional[datetime] = None) -> MaterialCopy:
    """Edit copy details. Status may only move between shelf states, never on a loaned or held copy."""
    with transaction(db):
        copy = get_copy(db, copy_id)
        status = changes.pop("status", None)
        was_lendable = is_lendable(copy)
        for field, value in changes.items():
            setattr(copy, field, value.value if hasattr(value, "value") else value)

        if status is not None and status.value != copy.status:
            if status not in MANUAL_COPY_STATUSES:
                raise ValidationError(
                    f"Copies cannot be set to {status.value} by hand",
                    errors=[{"field": "status", "message": "must be AVAILABLE, UNDER_REPAIR or REMOVED"}],
                )
            current = CopyStatus(copy.status)
            if current not in MANUAL_COPY_STATUSES:
                raise ConflictError(f"Copy is {current.value}; close the loan or reservation first")
            db.flush()
            if not claim_copy(db, copy_id, current, status):
                raise ConflictError(f"Copy {copy_id} changed status concurrently")
            logger.info(f"Copy {copy_id} status {current.value} -> {status.value}")
            if status == CopyStatus.AVAILABLE:
                ReservationQueue(db).promote_next(copy.material_id, copy_id, now=now)
        elif copy.status == CopyStatus.AVAILABLE.value and is_lendable(copy) and not was_lendable:
            # Repaired back into a lendable condition while on the shelf
            db.flush()
            ReservationQueue(db).promote_next(copy.material_id, copy_id, now=now)
    db.refresh(copy)
    return copy
