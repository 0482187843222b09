"""
Shared pytest fixtures

Every test gets a fresh in-memory SQLite database through aiosqlite.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ledger.database import Base, get_db
import ledger.models  # noqa: F401
from ledger.models import AccountType
from ledger.services.account_registry import AccountRegistry
from ledger.services.company_service import CompanyService


TEST_DATE = date(2024, 3, 15)


@pytest_asyncio.fixture
async def engine():
    """In-memory database shared by every session of one test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the transaction
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def company(db):
    company = await CompanyService(db).create_company("Green Acres Farm", "Test company")
    await db.commit()
    return company


@pytest_asyncio.fixture
async def chart(db, company):
    """Small chart of accounts keyed by short name"""
    registry = AccountRegistry(db)
    accounts = {
        "cash": await registry.create_account(company.id, "Cash", AccountType.ASSET, Decimal("10000.00")),
        "bank": await registry.create_account(company.id, "Bank", AccountType.ASSET, Decimal("0")),
        "payable": await registry.create_account(company.id, "Accounts Payable", AccountType.LIABILITY, Decimal("500.00")),
        "capital": await registry.create_account(company.id, "Owner Capital", AccountType.EQUITY, Decimal("10000.00")),
        "sales": await registry.create_account(company.id, "Sales", AccountType.REVENUE, Decimal("0")),
        "supplies": await registry.create_account(company.id, "Supplies", AccountType.EXPENSE, Decimal("0")),
    }
    await db.commit()
    return accounts


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client bound to the app, with get_db pointed at the test database"""
    from ledger.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def today():
    return TEST_DATE
