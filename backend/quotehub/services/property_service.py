# backend/quotehub/services/property_service.py
"""Key/value runtime properties stored as JSON."""

import logging
from typing import Any

from sqlalchemy.orm import Session

from quotehub.models import Property

logger = logging.getLogger(__name__)


class PropertyService:

    def get_by_key(self, db: Session, key: str) -> Any:
        """Stored value, or None when the key is unset."""
        prop = db.get(Property, key)
        return prop.value if prop is not None else None

    def put(self, db: Session, key: str, value: Any) -> None:
        prop = db.get(Property, key)
        if prop is None:
            db.add(Property(key=key, value=value))
        else:
            prop.value = value
        db.commit()
        logger.info(f"Property '{key}' updated")

    def delete(self, db: Session, key: str) -> None:
        prop = db.get(Property, key)
        if prop is not None:
            db.delete(prop)
            db.commit()
            logger.info(f"Property '{key}' deleted")
