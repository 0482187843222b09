"""Database Seed Script - Demo company with a starter chart of accounts"""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from decimal import Decimal

from ledger.database import AsyncSessionLocal, init_db, close_db
from ledger.models import Company, AccountType
from ledger.services.company_service import CompanyService
from ledger.services.account_registry import AccountRegistry

DEMO_COMPANY = "Green Acres Farm"

# (name, type, opening balance, description)
CHART_OF_ACCOUNTS = [
    ("Cash", AccountType.ASSET, Decimal("10000.00"), "Operating bank account"),
    ("Accounts Receivable", AccountType.ASSET, Decimal("0.00"), "Invoices awaiting payment"),
    ("Equipment", AccountType.ASSET, Decimal("0.00"), "Machinery and tools"),
    ("Accounts Payable", AccountType.LIABILITY, Decimal("0.00"), "Supplier bills"),
    ("Owner's Equity", AccountType.EQUITY, Decimal("10000.00"), "Founder capital"),
    ("Crop Sales", AccountType.REVENUE, Decimal("0.00"), "Harvest revenue"),
    ("Feed & Supplies", AccountType.EXPENSE, Decimal("0.00"), "Day-to-day supplies"),
    ("Fuel", AccountType.EXPENSE, Decimal("0.00"), "Diesel and gasoline"),
]


async def seed_database():
    """Seed the database with a demo company"""
    print("=" * 60)
    print("DATABASE SEEDING STARTED")
    print("=" * 60)

    await init_db()

    async with AsyncSessionLocal() as session:
        try:
            result = await session.execute(select(Company).where(Company.name == DEMO_COMPANY))
            if result.scalar_one_or_none():
                print("\n⚠️  Database already seeded. Skipping...")
                return

            print("\n1️⃣  Creating Company...")
            company = await CompanyService(session).create_company(
                DEMO_COMPANY, "Demo small business", "USD"
            )
            print(f"   ✓ Created: {company.name} (id={company.id})")

            print("\n2️⃣  Creating Chart of Accounts...")
            registry = AccountRegistry(session)
            for name, account_type, opening, description in CHART_OF_ACCOUNTS:
                account = await registry.create_account(
                    company.id, name, account_type, opening, description
                )
                print(f"   ✓ {account.account_code} {account.account_name}: {account.current_balance}")

            await session.commit()

            print("\n" + "=" * 60)
            print("✅ DATABASE SEEDING COMPLETED SUCCESSFULLY")
            print("=" * 60)

            print("\n💡 NEXT STEPS:")
            print("   1. Start the API server: uvicorn ledger.main:app --reload")
            print("   2. Visit: http://localhost:8000/docs")

            print("\n📝 SAMPLE API REQUESTS:")
            print("   • Chart of accounts:")
            print(f"     GET /api/v1/accounts?company_id={company.id}")
            print("\n   • Record a purchase:")
            print("     POST /api/v1/transactions/micro-transaction")
            print(f"     Body: {{\"company_id\": {company.id}, \"from_account_id\": 1, \"to_account_id\": 7, "
                  "\"amount\": 45.50, \"description\": \"Feed\"}")

            print("\n" + "=" * 60)

        except Exception as e:
            await session.rollback()
            print(f"\n❌ ERROR during seeding: {str(e)}")
            raise


async def main():
    """Main entry point"""
    try:
        await seed_database()
    except Exception as e:
        print(f"\n❌ Seeding failed: {str(e)}")
        sys.exit(1)
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
