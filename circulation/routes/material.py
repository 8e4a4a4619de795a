from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from circulation.database import get_db
from circulation.models.enums import MaterialType
from circulation.models.user import User
from circulation.services import catalog
from circulation.services.auth import get_current_user, require_librarian
from circulation.services.copies import get_copy
from circulation.schemas.material import (
    MaterialCreate,
    MaterialResponse,
    CopyCreate,
    CopyUpdate,
    CopyResponse,
)
from circulation.utils.timezone import ensure_aware

router = APIRouter(tags=["Catalog"])

# Material endpoints
@router.get("/materials", response_model=List[MaterialResponse])
async def get_materials(
    search: Optional[str] = Query(None, description="Search by title, author, or ISBN"),
    material_type: Optional[MaterialType] = Query(None, alias="type", description="Filter by material type"),
    category: Optional[str] = Query(None, description="Filter by category"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get list of materials with optional search and filter."""
    materials = catalog.list_materials(db, search=search, material_type=material_type, category=category)
    return [MaterialResponse.model_validate(material.to_dict()) for material in materials]

@router.post("/materials", response_model=MaterialResponse, status_code=status.HTTP_201_CREATED)
async def create_material(
    material_data: MaterialCreate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    data = material_data.model_dump()
    data["material_type"] = material_data.material_type.value
    material = catalog.create_material(db, data)
    return MaterialResponse.model_validate(material.to_dict())

@router.get("/materials/{material_id}", response_model=MaterialResponse)
async def get_material(
    material_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get material details by ID."""
    return MaterialResponse.model_validate(catalog.get_material(db, material_id).to_dict())

@router.get("/materials/{material_id}/copies", response_model=List[CopyResponse])
async def get_material_copies(
    material_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get all copies of a material."""
    copies = catalog.list_copies(db, material_id)
    return [CopyResponse.model_validate(copy.to_dict()) for copy in copies]

# Copy endpoints
@router.post("/material-copies", response_model=CopyResponse, status_code=status.HTTP_201_CREATED)
async def create_copy(
    copy_data: CopyCreate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    data = copy_data.model_dump()
    data["acquisition_date"] = ensure_aware(data["acquisition_date"])
    copy = catalog.create_copy(db, data)
    return CopyResponse.model_validate(copy.to_dict())

@router.get("/material-copies/{copy_id}", response_model=CopyResponse)
async def get_material_copy(
    copy_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return CopyResponse.model_validate(get_copy(db, copy_id).to_dict())

@router.patch("/material-copies/{copy_id}", response_model=CopyResponse)
async def update_material_copy(
    copy_id: int,
    copy_data: CopyUpdate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Edit a copy; returning it to AVAILABLE offers it to the reservation queue."""
    copy = catalog.update_copy(db, copy_id, copy_data.model_dump(exclude_unset=True))
    return CopyResponse.model_validate(copy.to_dict())
