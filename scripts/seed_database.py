"""Database seeding script (users, a group and a few expenses)"""
import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.append(str(Path(__file__).parent.parent))

from app.config import get_settings
from app.core.exceptions import ConflictError
from app.database import create_all
from app.engine import AggregationEngine
from app.models.expense import ExpenseCategory
from app.schemas.expense import ExpenseCreate, ShareInput
from app.schemas.group import GroupCreate
from app.schemas.user import UserCreate

USERS = [
    {"name": "Asha Rao", "email": "asha@example.com", "timezone": "Asia/Kolkata"},
    {"name": "Ben Carter", "email": "ben@example.com", "timezone": "Europe/London"},
    {"name": "Chen Wei", "email": "chen@example.com"},
    {"name": "Dana Levi", "email": "dana@example.com"},
    {"name": "Emil Novak", "email": "emil@example.com"},
]


async def seed(engine: AggregationEngine):
    """Seed users, one group and some expenses"""
    users = []
    for user_data in USERS:
        try:
            user = await engine.create_user(UserCreate(**user_data))
            print(f"  ✅ Created user '{user.name}' ({user.email})")
            users.append(user)
        except ConflictError:
            print(f"  ⏭️  User '{user_data['email']}' already exists, skipping...")

    if len(users) < 3:
        print("\n⏭️  Users already seeded, skipping group and expenses")
        return

    group = await engine.create_group(
        GroupCreate(
            name="Flat 4B",
            description="Shared flat expenses",
            created_by=users[0].id,
            member_ids=[user.id for user in users[1:3]],
        )
    )
    print(f"  ✅ Created group '{group.name}' with {len(group.members)} members")

    expenses = [
        (users[0], Decimal("300.00"), ExpenseCategory.GROCERIES, "Weekly groceries"),
        (users[1], Decimal("1200.00"), ExpenseCategory.UTILITIES, "Electricity bill"),
        (users[2], Decimal("301.00"), ExpenseCategory.FOOD, "Pizza night"),
    ]
    for payer, amount, category, description in expenses:
        expense = await engine.record_expense(
            ExpenseCreate(
                description=description,
                amount=amount,
                paid_by=payer.id,
                group_id=group.id,
                split_equally=True,
                category=category,
                shares=[ShareInput(user_id=user.id) for user in users[:3]],
            )
        )
        print(f"  ✅ Recorded '{expense.description}' ({expense.currency} {expense.amount})")

    print("\n📊 Balances:")
    for user in users[:3]:
        balance = await engine.net_balance(user.id)
        print(f"  {user.name}: lent {balance.lent}, owed {balance.owed}, net {balance.net_balance}")


async def main():
    """Main function to run seeding"""
    print("🌱 Seeding database...\n")

    settings = get_settings()
    engine = AggregationEngine.from_settings(settings)
    try:
        await create_all(engine.db_engine)
        await seed(engine)
        print("\n✨ Database seeding completed successfully!")
    except Exception as e:
        print(f"\n❌ Error seeding database: {str(e)}")
        raise
    finally:
        await engine.close()


if __name__ == "__main__":
    asyncio.run(main())
