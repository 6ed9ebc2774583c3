"""
Customer Module - Address Service
===================================
Address CRUD with the single-default invariant. Clearing the old default and
setting the new one happen in the caller's transaction; the partial unique
index rejects any interleaving that would leave two defaults.
"""

import logging
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.exceptions import ConflictError, NotFoundError, ValidationError
from modules.customer.address_models import Address, ADDRESS_LABELS

logger = logging.getLogger("mimis.address")

_EDITABLE_FIELDS = {
    "label", "street", "city", "state", "zip_code",
    "additional_info", "latitude", "longitude", "is_default",
}


class AddressService:

    def list_addresses(self, db: Session, user_id: int) -> List[Address]:
        return db.query(Address).filter(
            Address.user_id == user_id,
        ).order_by(Address.is_default.desc(), desc(Address.created_at), desc(Address.id)).all()

    def get_address(self, db: Session, user_id: int, address_id: int) -> Address:
        addr = db.query(Address).filter(
            Address.id == address_id, Address.user_id == user_id,
        ).first()
        if not addr:
            raise NotFoundError("Address not found")
        return addr

    def get_default(self, db: Session, user_id: int) -> Optional[Address]:
        return db.query(Address).filter(
            Address.user_id == user_id, Address.is_default == True,  # noqa: E712
        ).first()

    def create_address(self, db: Session, user_id: int, data: dict) -> Address:
        data = self._clean(data)
        make_default = bool(data.pop("is_default", False))
        addr = Address(user_id=user_id, is_default=False, **data)
        db.add(addr)
        db.flush()
        if make_default:
            self._promote(db, user_id, addr)
        return addr

    def update_address(self, db: Session, user_id: int, address_id: int, data: dict) -> Address:
        addr = self.get_address(db, user_id, address_id)
        data = self._clean(data)
        make_default = data.pop("is_default", None)
        for key, value in data.items():
            setattr(addr, key, value)
        if make_default:
            self._promote(db, user_id, addr)
        elif make_default is False and addr.is_default:
            addr.is_default = False
        db.flush()
        return addr

    def set_default(self, db: Session, user_id: int, address_id: int) -> Address:
        addr = self.get_address(db, user_id, address_id)
        self._promote(db, user_id, addr)
        return addr

    def delete_address(self, db: Session, user_id: int, address_id: int):
        addr = self.get_address(db, user_id, address_id)
        was_default = addr.is_default
        db.delete(addr)
        db.flush()

        if was_default:
            # Most recent remaining address inherits the default flag
            successor = db.query(Address).filter(
                Address.user_id == user_id,
            ).order_by(desc(Address.created_at), desc(Address.id)).first()
            if successor:
                self._promote(db, user_id, successor)

    # ==========================================
    # Private helpers
    # ==========================================

    def _promote(self, db: Session, user_id: int, addr: Address):
        """Clear every other default for the user, then flag `addr`."""
        db.query(Address).filter(
            Address.user_id == user_id,
            Address.id != addr.id,
            Address.is_default == True,  # noqa: E712
        ).update({"is_default": False}, synchronize_session="fetch")
        db.flush()
        addr.is_default = True
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Concurrent default-address update for user #{user_id}")
            raise ConflictError("Default address was changed concurrently, please retry")

    def _clean(self, data: dict) -> dict:
        unknown = set(data) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Invalid fields: {', '.join(sorted(unknown))}")
        label = data.get("label")
        if label is not None and label not in ADDRESS_LABELS:
            raise ValidationError(f"label must be one of {', '.join(ADDRESS_LABELS)}")
        for key in ("street", "city", "state", "zip_code"):
            if key in data:
                value = (data[key] or "").strip()
                if not value:
                    raise ValidationError(f"{key} is required")
                data[key] = value
        return data


address_service = AddressService()
