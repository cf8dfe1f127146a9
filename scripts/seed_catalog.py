#!/usr/bin/env python3
"""Seed service categories, services, starter inventory and the admin account."""
import os
import sys
from datetime import date
from pathlib import Path

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from app import create_app
from app.extensions import db
from app.models import InventoryItem, Service, ServiceCategory, User
from app.services import catalog_service, inventory_service, staff_service

CATALOG = {
    "Washing": [
        ("Exterior Foam Wash", "Pre-rinse, snow foam and hand wash", 500, 45),
        ("Interior Vacuum", "Full cabin and boot vacuum", 300, 30),
    ],
    "Detailing": [
        ("Interior Deep Clean", "Upholstery shampoo and dashboard dressing", 1500, 120),
        ("Paint Correction", "Two-stage machine polish", 6000, 360),
    ],
    "Protection": [
        ("Ceramic Coating", "Nine-hour ceramic coating with one year warranty", 15000, 480),
        ("Wax Polish", "Carnauba wax finish", 1200, 90),
    ],
}

INVENTORY = [
    {"name": "Snow Foam Shampoo", "category": "Chemicals", "unit": "litres", "current_stock": 20, "min_stock_level": 5, "cost_per_unit": 450},
    {"name": "Microfiber Towel", "category": "Consumables", "unit": "pieces", "current_stock": 100, "min_stock_level": 30, "cost_per_unit": 80},
    {"name": "Ceramic Coating Kit", "category": "Coatings", "unit": "kits", "current_stock": 6, "min_stock_level": 2, "cost_per_unit": 4200},
]

def seed_catalog():
    """Create the starter catalog; existing rows are left alone."""
    app = create_app()

    with app.app_context():
        db.create_all()

        for category_name, services in CATALOG.items():
            category = ServiceCategory.query.filter_by(name=category_name).first()
            if category is None:
                category = catalog_service.create_category(name=category_name)
                print(f"📁 Created category {category_name}")
            for name, description, price, minutes in services:
                if Service.query.filter_by(name=name).first():
                    continue
                catalog_service.create_service(
                    name=name,
                    category_id=category.category_id,
                    description=description,
                    base_price=price,
                    duration_minutes=minutes,
                )
                print(f"  ✅ {name} ({price})")

        for item in INVENTORY:
            if InventoryItem.query.filter_by(name=item["name"]).first() is None:
                inventory_service.create_item(**item)
                print(f"📦 Stocked {item['name']}")

        if User.query.filter_by(username="admin").first() is None:
            staff_service.create_staff(
                username="admin",
                email=os.environ.get("SEED_ADMIN_EMAIL", "admin@detailing.local"),
                password=os.environ.get("SEED_ADMIN_PASSWORD", "admin123"),
                first_name="Studio",
                last_name="Admin",
                phone="0000000000",
                position="admin",
                hire_date=date.today(),
            )
            print("🔑 Created admin user (change the default password immediately)")

        print("✅ Catalog seeded")

if __name__ == "__main__":
    seed_catalog()
