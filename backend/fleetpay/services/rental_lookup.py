"""
Rental Lookup — Read-only view into the rental CRUD layer.

Callbacks may report on transactions that were never created through this
service; when the merchant transaction id is a rental id, the rental's rider
can still be linked. The rentals table belongs to the CRUD layer and is only
queried here, never written.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE,
)


def is_uuid(value: Optional[str]) -> bool:
    return bool(value) and bool(_UUID_RE.match(value))


@dataclass(frozen=True)
class RentalRef:
    rental_id: str
    rider_id: Optional[str] = None


class RentalLookup(Protocol):
    def find(self, db: Session, rental_id: str) -> Optional[RentalRef]:
        ...


class SqlRentalLookup:
    """Looks rentals up in the shared `rentals` table by primary key."""

    def find(self, db: Session, rental_id: str) -> Optional[RentalRef]:
        if not is_uuid(rental_id):
            return None
        try:
            row = db.execute(
                text("select id, rider_id from rentals where id = :id limit 1"),
                {"id": rental_id},
            ).first()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Rental lookup failed for %s: %s", rental_id, e)
            return None
        if row is None:
            return None
        return RentalRef(rental_id=str(row[0]), rider_id=str(row[1]) if row[1] is not None else None)
