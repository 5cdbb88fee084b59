#!/usr/bin/env python3
"""Seed the catalog with sample home services."""
import sys
from decimal import Decimal
from pathlib import Path

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from handykonnect import create_app
from handykonnect.extensions import db
from handykonnect.models import Service

SAMPLE_SERVICES = [
    {
        "name": "General Handyman (2 hours)",
        "description": "Small repairs, mounting and assembly",
        "price": Decimal("100.00"),
        "duration_minutes": 120,
    },
    {
        "name": "Leaky Faucet Repair",
        "description": "Diagnose and fix a dripping tap",
        "price": Decimal("85.00"),
        "duration_minutes": 60,
    },
    {
        "name": "Interior Painting (per room)",
        "description": "Walls and trim, paint supplied by client",
        "price": Decimal("350.00"),
        "duration_minutes": 480,
    },
    {
        "name": "Furniture Assembly",
        "description": "Flat-pack furniture assembled on site",
        "price": Decimal("60.00"),
        "duration_minutes": 90,
    },
    {
        "name": "Light Fixture Installation",
        "description": "Replace or install a ceiling light",
        "price": Decimal("120.00"),
        "duration_minutes": 60,
    },
]


def seed_services():
    """Add the sample services that are not in the catalog yet."""
    app = create_app()

    with app.app_context():
        existing = {name for (name,) in db.session.query(Service.name).all()}
        added = 0
        for data in SAMPLE_SERVICES:
            if data["name"] in existing:
                print(f"  ⏭️  {data['name']} already exists")
                continue
            db.session.add(Service(**data))
            added += 1
            print(f"  ✅ Added {data['name']} (${data['price']})")

        db.session.commit()
        print(f"\n🎉 Seeded {added} services")


if __name__ == "__main__":
    seed_services()
