"""
Database seeding script for initial accounts.

Creates the system owner configured through BOOTSTRAP_OWNER_* settings and a
demo tenant (company, shop, manager, driver with a vehicle, customer and one
pending order) for development.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.db.session import AsyncSessionLocal, engine, Base
from dispatch_backend.app.models.company import Company, Shop
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.models.order import Order
# Imported so every table is registered on Base before create_all
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.payment import Payment
from dispatch_backend.app.models.notification import Notification
from dispatch_backend.app.models.audit_log import AuditLog
from dispatch_backend.app.models.enums import UserRole, DriverStatus
from dispatch_backend.app.core.security import get_password_hash
from sqlalchemy import select


async def seed_owner(db) -> bool:
    """
    Create the system owner from settings.
    
    Returns:
        True if the owner was created, False if skipped
    """
    email = settings.bootstrap_owner_email
    password = settings.bootstrap_owner_password
    if not email or not password:
        print("ℹ️  BOOTSTRAP_OWNER_EMAIL / BOOTSTRAP_OWNER_PASSWORD not set, skipping system owner")
        return False
    
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        print(f"ℹ️  System owner {email} already exists")
        return False
    
    db.add(User(
        name=settings.bootstrap_owner_name,
        email=email,
        username=email.split("@")[0],
        hashed_password=get_password_hash(password),
        role=UserRole.OWNER,
        is_active=True
    ))
    print(f"✅ Created system owner ({email})")
    return True


async def seed_demo_tenant(db) -> bool:
    """
    Seed a demo company with one of each tenant role.
    
    Creates:
    - 1 company with 1 shop
    - 1 shop MANAGER
    - 1 DRIVER (online) owning 1 vehicle
    - 1 CUSTOMER with a pending order
    """
    result = await db.execute(select(User).where(User.username == "manager"))
    if result.scalar_one_or_none():
        print("ℹ️  Demo tenant already exists, skipping")
        return False
    
    company = Company(name="Demo Deliveries")
    db.add(company)
    await db.flush()
    
    shop = Shop(company_id=company.id, name="Downtown", address="1 Main St")
    db.add(shop)
    await db.flush()
    
    manager = User(
        name="Demo Manager",
        email="manager@demo.local",
        username="manager",
        hashed_password=get_password_hash("manager123"),
        role=UserRole.MANAGER,
        company_id=company.id,
        shop_id=shop.id
    )
    driver = User(
        name="Demo Driver",
        email="driver@demo.local",
        username="driver",
        phone="+10000000001",
        hashed_password=get_password_hash("driver123"),
        role=UserRole.DRIVER,
        company_id=company.id,
        shop_id=shop.id,
        driver_status=DriverStatus.ONLINE
    )
    customer = User(
        name="Demo Customer",
        email="customer@demo.local",
        username="customer",
        phone="+10000000002",
        hashed_password=get_password_hash("customer123"),
        role=UserRole.CUSTOMER
    )
    db.add_all([manager, driver, customer])
    await db.flush()
    
    db.add(Vehicle(
        company_id=company.id,
        shop_id=shop.id,
        driver_id=driver.id,
        plate_number="DEMO-001",
        vehicle_type="motor",
        brand="Honda",
        model="PCX"
    ))
    db.add(Order(
        company_id=company.id,
        shop_id=shop.id,
        customer_id=customer.id,
        pickup_location={"address": "1 Main St", "lat": 40.7128, "lng": -74.0060},
        dropoff_location={"address": "22 Park Ave", "lat": 40.7306, "lng": -73.9866},
        items=[{"product_id": 1, "name": "Pizza", "price": 12.0, "quantity": 2, "subtotal": 24.0}],
        subtotal=24.0,
        delivery_fee=3.0,
        total=27.0,
        timeline=[]
    ))
    print("✅ Created demo tenant (manager / manager123, driver / driver123, customer / customer123)")
    return True


async def seed_users():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    async with AsyncSessionLocal() as db:
        print("🌱 Starting seeding...")
        await seed_owner(db)
        await seed_demo_tenant(db)
        await db.commit()
        print("\n🎉 Seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_users())
