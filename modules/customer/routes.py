"""
Customer Routes - Addresses
=============================
List, add, edit, delete and set-default for the caller's delivery addresses.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.schemas import CamelModel
from modules.auth.deps import get_current_user
from modules.customer.address_service import address_service

router = APIRouter(prefix="/addresses", tags=["addresses"])


class AddressCreate(CamelModel):
    label: str = "Home"
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1, max_length=16)
    additional_info: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_default: bool = False


class AddressUpdate(CamelModel):
    label: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    additional_info: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_default: Optional[bool] = None


class AddressRead(CamelModel):
    id: int
    label: str
    street: str
    city: str
    state: str
    zip_code: str
    additional_info: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_default: bool
    created_at: Optional[datetime] = None


@router.get("", response_model=List[AddressRead])
def list_addresses(db: Session = Depends(get_db), me=Depends(get_current_user)):
    return address_service.list_addresses(db, me.id)


@router.post("", response_model=AddressRead, status_code=status.HTTP_201_CREATED)
def add_address(payload: AddressCreate, db: Session = Depends(get_db), me=Depends(get_current_user)):
    addr = address_service.create_address(db, me.id, payload.model_dump())
    db.commit()
    db.refresh(addr)
    return addr


@router.get("/{address_id}", response_model=AddressRead)
def get_address(address_id: int, db: Session = Depends(get_db), me=Depends(get_current_user)):
    return address_service.get_address(db, me.id, address_id)


@router.put("/{address_id}", response_model=AddressRead)
def update_address(
    address_id: int,
    payload: AddressUpdate,
    db: Session = Depends(get_db),
    me=Depends(get_current_user),
):
    addr = address_service.update_address(db, me.id, address_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(addr)
    return addr


@router.put("/{address_id}/default", response_model=AddressRead)
def set_default_address(address_id: int, db: Session = Depends(get_db), me=Depends(get_current_user)):
    addr = address_service.set_default(db, me.id, address_id)
    db.commit()
    db.refresh(addr)
    return addr


@router.delete("/{address_id}")
def delete_address(address_id: int, db: Session = Depends(get_db), me=Depends(get_current_user)):
    address_service.delete_address(db, me.id, address_id)
    db.commit()
    return {"message": "Address deleted successfully"}
