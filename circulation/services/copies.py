from sqlalchemy.orm import Session
from circulation.models.enums import CopyCondition, CopyStatus
from circulation.models.material import MaterialCopy
from circulation.services.errors import NotFoundError

# Copies in these conditions are never lent or held for a reservation
UNLENDABLE_CONDITIONS = (CopyCondition.DAMAGED.value, CopyCondition.LOST.value)

def get_copy(db: Session, copy_id: int) -> MaterialCopy:
    copy = db.query(MaterialCopy).filter(MaterialCopy.copy_id == copy_id).first()
    if not copy:
        raise NotFoundError(f"Material copy with ID {copy_id} not found")
    return copy

def is_lendable(copy: MaterialCopy) -> bool:
    return copy.condition not in UNLENDABLE_CONDITIONS

def first_lendable_copy(db: Session, material_id: int):
    """Lowest-id AVAILABLE copy of the material in a condition that can go out on loan."""
    return db.query(MaterialCopy).filter(
        MaterialCopy.material_id == material_id,
        MaterialCopy.status == CopyStatus.AVAILABLE.value,
        MaterialCopy.condition.notin_(UNLENDABLE_CONDITIONS)
    ).order_by(MaterialCopy.copy_id).first()

def claim_copy(db: Session, copy_id: int, expected: CopyStatus, new: CopyStatus) -> bool:
    """Compare-and-set a copy's status. False when another transaction got there first."""
    updated = db.query(MaterialCopy).filter(
        MaterialCopy.copy_id == copy_id,
        MaterialCopy.status == expected.value
    ).update({"status": new.value}, synchronize_session="evaluate")
    return updated == 1
