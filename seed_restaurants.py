#!/usr/bin/env python3
"""
Seed script to load partner restaurants into the database.
Usage: python seed_restaurants.py [path/to/restaurants.json]

Restaurants are matched by WhatsApp phone; existing rows are updated.
"""

import json
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent / "backend"
sys.path.insert(0, str(backend_dir))

from vinhopay.db.session import SessionLocal
from vinhopay.db.init_db import init_db
from vinhopay.models.restaurant import Restaurant

FIELDS = ("name", "contact_name", "neighborhood", "city", "state", "is_partner", "accepts_cork_waiver")


def seed_restaurants(json_file: Path) -> bool:
    """Upsert restaurants from a JSON list."""
    if not json_file.exists():
        print(f"Error: {json_file} not found!")
        return False

    with open(json_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    # Ensure tables exist
    init_db()

    db = SessionLocal()
    created = updated = 0
    try:
        for item in data:
            phone = item.get("phone_whatsapp")
            if not phone or not item.get("name"):
                print(f"  ! skipped entry without name/phone: {item}")
                continue

            restaurant = db.query(Restaurant).filter(Restaurant.phone_whatsapp == phone).first()
            if restaurant is None:
                restaurant = Restaurant(phone_whatsapp=phone)
                db.add(restaurant)
                created += 1
            else:
                updated += 1

            for field in FIELDS:
                if field in item:
                    setattr(restaurant, field, item[field])

        db.commit()
        print(f"✅ Restaurants seeded: {created} created, {updated} updated")
        return True
    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding restaurants: {e}")
        return False
    finally:
        db.close()


if __name__ == "__main__":
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(__file__).parent / "restaurants.json"
    sys.exit(0 if seed_restaurants(path) else 1)
