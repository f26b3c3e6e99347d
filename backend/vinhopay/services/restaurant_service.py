"""Restaurants are provisioned externally; these are read-only lookups."""
from typing import List

from sqlalchemy.orm import Session

from vinhopay.models.restaurant import Restaurant


def get_restaurant_by_phone(db: Session, phone: str) -> Restaurant | None:
    return db.query(Restaurant).filter(Restaurant.phone_whatsapp == phone).first()


def get_restaurant_by_id(db: Session, restaurant_id: int) -> Restaurant | None:
    return db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()


def get_partner_restaurants(db: Session) -> List[Restaurant]:
    """Partner restaurants in menu order (name, then id for ties)."""
    return (
        db.query(Restaurant)
        .filter(Restaurant.is_partner.is_(True))
        .order_by(Restaurant.name.asc(), Restaurant.id.asc())
        .all()
    )
