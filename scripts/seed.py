"""
Mimasa Store - Database Seeder
================================
Seeds the catalog and the cart config with starter data.

Usage:
    python scripts/seed.py          # Insert missing rows only
    python scripts/seed.py --reset  # Delete products/config first and reseed
"""

import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.database import SessionLocal, Base, engine
from config.settings import DEFAULT_SHIPPING_FEE, DEFAULT_FREE_SHIPPING_THRESHOLD
from modules.catalog.models import Product, ProductCategory
from modules.cart.models import CartItem
from modules.pricing.models import CartConfig, SHIPPING_FEE_KEY, FREE_SHIPPING_KEY
from modules.checkout.models import CheckoutAttempt  # noqa: F401
from modules.order.models import Order, OrderItem, OrderReconciliation  # noqa: F401

PRODUCTS = [
    {
        "name": "Butter Chicken Gravy",
        "description": "Rich and creamy tomato-based curry",
        "long_description": "Authentic North Indian butter chicken gravy made with premium ingredients. "
                            "Perfect for restaurant-quality taste at home.",
        "price": Decimal("120.00"),
        "category": ProductCategory.GRAVY.value,
        "weight": "250g",
        "stock_quantity": 50,
    },
    {
        "name": "Tandoori Marinade",
        "description": "Spicy yogurt-based marinade",
        "long_description": "Traditional tandoori marinade with perfect blend of spices. "
                            "Ideal for chicken, paneer, and vegetables.",
        "price": Decimal("85.00"),
        "category": ProductCategory.MARINADE.value,
        "weight": "200g",
        "stock_quantity": 30,
    },
    {
        "name": "Kadai Gravy",
        "description": "Bell pepper and onion masala base",
        "price": Decimal("110.00"),
        "category": ProductCategory.GRAVY.value,
        "weight": "250g",
        "stock_quantity": 40,
    },
    {
        "name": "Garam Masala",
        "description": "Hand-roasted whole spice blend",
        "price": Decimal("95.00"),
        "category": ProductCategory.POWDER.value,
        "weight": "100g",
        "stock_quantity": 60,
    },
]


def seed(reset: bool = False):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if reset:
            print("Clearing cart items, products and cart config...")
            db.query(CartItem).delete()
            db.query(Product).delete()
            db.query(CartConfig).delete()
            db.commit()

        print("\n[1/2] Products")
        for data in PRODUCTS:
            if db.query(Product).filter(Product.name == data["name"]).first():
                print(f"  = {data['name']} (exists)")
                continue
            db.add(Product(**data))
            print(f"  + {data['name']}")

        print("\n[2/2] Cart config")
        for name, value in [
            (SHIPPING_FEE_KEY, DEFAULT_SHIPPING_FEE),
            (FREE_SHIPPING_KEY, DEFAULT_FREE_SHIPPING_THRESHOLD),
        ]:
            if db.query(CartConfig).filter(CartConfig.name == name).first():
                print(f"  = {name} (exists)")
                continue
            db.add(CartConfig(name=name, value=str(value)))
            print(f"  + {name} = {value}")

        db.commit()
        print("\nSeed complete.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed(reset="--reset" in sys.argv)
