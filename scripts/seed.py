"""
Mimi's Kitchen API - Database Seeder
======================================
Seeds an admin, a test customer with an address, and the menu.
Existing rows (matched by email / product name) are left untouched.

Usage:
    python scripts/seed.py
"""

import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import DATABASE_URL
from config.database import Database
from common.security import hash_password
from modules.user.models import User, UserRole
from modules.customer.address_models import Address
from modules.catalog.models import Product
from modules.cart.models import Cart, CartItem  # noqa
from modules.order.models import Order, OrderItem, OrderStatusLog  # noqa
from modules.notification.models import Notification  # noqa
from modules.review.models import Review  # noqa
from modules.admin.models import RequestLog  # noqa


USERS = [
    {"email": "admin@mimiskitchenuk.com", "full_name": "Kitchen Admin", "role": UserRole.ADMIN.value, "password": "admin12345"},
    {"email": "customer@example.com", "full_name": "Test Customer", "role": UserRole.USER.value, "password": "customer123"},
]

MENU = [
    # (name, category, price, description)
    ("Jollof Rice & Chicken", "mains", "12.50", "Smoky party jollof with grilled chicken thigh"),
    ("Egusi Soup & Pounded Yam", "mains", "14.00", "Melon seed soup with spinach and assorted meat"),
    ("Suya Skewers", "starters", "7.50", "Spiced beef skewers with onions and yaji"),
    ("Puff Puff (6 pcs)", "starters", "4.00", "Sweet fried dough balls"),
    ("Fried Plantain", "sides", "3.50", "Ripe dodo, lightly salted"),
    ("Moi Moi", "sides", "4.50", "Steamed bean pudding"),
    ("Chapman", "drinks", "3.00", "Fruity Nigerian mocktail"),
    ("Zobo", "drinks", "2.50", "Hibiscus drink with ginger and pineapple"),
]


def seed_users(db):
    print("[1/3] Users...")
    for data in USERS:
        if db.query(User).filter(User.email == data["email"]).first():
            print(f"  = {data['email']} exists")
            continue
        db.add(User(
            email=data["email"],
            full_name=data["full_name"],
            role=data["role"],
            password_hash=hash_password(data["password"]),
        ))
        print(f"  + {data['email']} ({data['role']})")
    db.flush()


def seed_address(db):
    print("[2/3] Customer address...")
    customer = db.query(User).filter(User.email == "customer@example.com").first()
    if db.query(Address).filter(Address.user_id == customer.id).first():
        print("  = address exists")
        return
    db.add(Address(
        user_id=customer.id,
        label="Home",
        street="12 Brixton Road",
        city="London",
        state="Greater London",
        zip_code="SW9 6BU",
        is_default=True,
    ))
    print("  + default address")


def seed_menu(db):
    print("[3/3] Menu...")
    for name, category, price, description in MENU:
        if db.query(Product).filter(Product.name == name).first():
            continue
        db.add(Product(name=name, category=category, price=Decimal(price), description=description))
        print(f"  + {name} ({category}) £{price}")


def seed():
    database = Database(DATABASE_URL)
    database.create_all()
    db = database.session()
    try:
        print("=" * 50)
        seed_users(db)
        seed_address(db)
        seed_menu(db)
        db.commit()
        print("=" * 50)
        print("Seed complete!")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    seed()
