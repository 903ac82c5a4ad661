"""
Centralized Test Configuration.
"""

import os

# Cheap hashing for tests; must be set before settings are loaded
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from dispatch_backend.app.main import app
from dispatch_backend.app.db.session import get_db, Base
import dispatch_backend.app.core.redis_client as redis_client_module
from dispatch_backend.app.core.jwt import create_access_token
from dispatch_backend.app.core.security import get_password_hash
from dispatch_backend.app.core.session_store import create_session
from dispatch_backend.app.models.company import Company, Shop
from dispatch_backend.app.models.enums import DriverStatus, UserRole
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.order_enums import OrderStatus
from dispatch_backend.app.models.user import User
from dispatch_backend.app.models.vehicle import Vehicle
from dispatch_backend.app.services.realtime import ConnectionManager, get_notifier

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Same session options as the application
TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False
    
    async def ping(self):
        if self._closed:
            return False
        return True
    
    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)
        
    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True
    
    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)
    
    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0
    
    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0
        
    async def flushdb(self):
        if not self._closed:
            self.store = {}
        
    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """
    
    # Patch the global redis client used by the session store
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session
    
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield
    
    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    await redis_client_session.flushdb()
    
    yield
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def notifier():
    """Fresh notifier per test, also used by the endpoints."""
    manager = ConnectionManager()
    app.dependency_overrides[get_notifier] = lambda: manager
    yield manager
    app.dependency_overrides.pop(get_notifier, None)


@pytest.fixture
async def client(notifier):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def fetch():
    """Read a row through a fresh session, bypassing any identity map."""
    async def _fetch(model, pk):
        async with TestingSessionLocal() as session:
            return await session.get(model, pk)
    return _fetch


@pytest.fixture
def session_factory():
    """Open extra sessions, e.g. to play a competing request."""
    return TestingSessionLocal


class FakeSocket:
    """Stands in for a WebSocket on the notifier."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


@pytest.fixture
def socket_factory():
    return FakeSocket


class Factory:
    """Creates committed tenant data for a test."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        await self.session.refresh(obj)
        return obj

    async def company(self, name: str = "Acme Deliveries") -> Company:
        return await self._save(Company(name=name))

    async def shop(self, company: Company, name: str = None) -> Shop:
        return await self._save(Shop(company_id=company.id, name=name or f"Shop {self._next()}"))

    async def user(
        self,
        role: UserRole,
        company: Company = None,
        shop: Shop = None,
        name: str = None,
        password: str = "password123",
        driver_status: DriverStatus = DriverStatus.OFFLINE,
        is_active: bool = True,
    ) -> User:
        n = self._next()
        username = f"{role.value}{n}"
        return await self._save(User(
            name=name or f"{role.value.title()} {n}",
            email=f"{username}@test.com",
            username=username,
            phone=f"+1555000{n:04d}",
            hashed_password=get_password_hash(password),
            role=role,
            company_id=company.id if company else None,
            shop_id=shop.id if shop else None,
            driver_status=driver_status,
            is_active=is_active,
        ))

    async def vehicle(self, driver: User, plate: str = None) -> Vehicle:
        return await self._save(Vehicle(
            company_id=driver.company_id,
            shop_id=driver.shop_id,
            driver_id=driver.id,
            plate_number=plate or f"PLT-{self._next():04d}",
            vehicle_type="motor",
            brand="Honda",
            model="PCX",
        ))

    async def order(
        self,
        company: Company,
        customer: User,
        shop: Shop = None,
        status: OrderStatus = OrderStatus.PENDING,
        subtotal: float = 24.0,
        delivery_fee: float = 3.0,
    ) -> Order:
        return await self._save(Order(
            company_id=company.id,
            shop_id=shop.id if shop else None,
            customer_id=customer.id,
            status=status,
            pickup_location={"address": "1 Main St", "lat": 40.7128, "lng": -74.006},
            dropoff_location={"address": "22 Park Ave", "lat": 40.7306, "lng": -73.9866},
            items=[{"product_id": 1, "name": "Pizza", "price": 12.0, "quantity": 2, "subtotal": 24.0}],
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total=subtotal + delivery_fee,
            timeline=[],
        ))


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


@pytest.fixture
def auth_headers():
    """Issue a session-backed bearer header for a user."""
    async def _headers(user: User) -> dict:
        session_id = await create_session(user.id)
        token = create_access_token(data={
            "sub": user.username,
            "user_id": user.id,
            "role": user.role.value,
            "sid": session_id,
        })
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def acting():
    """Build the ``current_user`` dict the auth dependency produces for a user."""
    def _acting(user: User) -> dict:
        return {
            "sub": user.username,
            "user_id": user.id,
            "role": user.role.value,
            "company_id": user.company_id,
            "shop_id": user.shop_id,
            "sid": "test-session",
        }
    return _acting


@pytest.fixture
async def tenant(factory):
    """A company with one shop, its manager, a customer and an online driver with a vehicle."""
    company = await factory.company()
    shop = await factory.shop(company)
    manager = await factory.user(UserRole.MANAGER, company=company, shop=shop)
    customer = await factory.user(UserRole.CUSTOMER)
    driver = await factory.user(UserRole.DRIVER, company=company, shop=shop, driver_status=DriverStatus.ONLINE)
    vehicle = await factory.vehicle(driver)
    order = await factory.order(company, customer, shop=shop)
    return {
        "company": company,
        "shop": shop,
        "manager": manager,
        "customer": customer,
        "driver": driver,
        "vehicle": vehicle,
        "order": order,
    }
