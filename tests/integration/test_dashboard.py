"""Integration tests for expense lists, group views and the dashboard"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.exceptions import NotFoundError
from app.schemas.expense import ExpenseCreate, ShareInput, VoidRequest
from app.schemas.group import GroupCreate


def expense(payer, users, amount="300", when=None, **kwargs) -> ExpenseCreate:
    return ExpenseCreate(
        description=kwargs.pop("description", "Dinner"),
        amount=Decimal(amount),
        paid_by=payer.id,
        date=when,
        split_equally=True,
        shares=[ShareInput(user_id=user.id) for user in users],
        **kwargs,
    )


class TestUserExpenses:
    """Test the paginated expense list of a user"""

    @pytest.mark.asyncio
    async def test_pages_most_recent_first(self, engine, alice, bob):
        for day in range(1, 6):
            await engine.record_expense(
                expense(alice, [alice, bob], when=datetime(2024, 5, day, 12), description=f"Day {day}")
            )

        first = await engine.user_expenses(bob.id, page=1, page_size=2)
        last = await engine.user_expenses(bob.id, page=3, page_size=2)

        assert [item.description for item in first.items] == ["Day 5", "Day 4"]
        assert [item.description for item in last.items] == ["Day 1"]
        assert first.pagination.total_items == 5
        assert first.pagination.total_pages == 3

    @pytest.mark.asyncio
    async def test_share_seen_from_each_side(self, engine, alice, bob, carol):
        await engine.record_expense(expense(alice, [alice, bob, carol]))

        payer_view = (await engine.user_expenses(alice.id)).items[0]
        holder_view = (await engine.user_expenses(bob.id)).items[0]

        assert payer_view.share_type == "credit"
        assert payer_view.your_share == Decimal("200")
        assert holder_view.share_type == "debit"
        assert holder_view.your_share == Decimal("100")
        assert holder_view.paid_by.id == alice.id

    @pytest.mark.asyncio
    async def test_group_name_and_void_flag(self, engine, alice, bob):
        group = await engine.create_group(
            GroupCreate(name="Flat", created_by=alice.id, member_ids=[bob.id])
        )
        recorded = await engine.record_expense(expense(alice, [alice, bob], group_id=group.id))
        await engine.void_expense(recorded.id, VoidRequest(actor_id=alice.id))

        item = (await engine.user_expenses(bob.id)).items[0]

        assert item.group_name == "Flat"
        assert item.is_void is True

    @pytest.mark.asyncio
    async def test_uninvolved_user_sees_nothing(self, engine, alice, bob, carol):
        await engine.record_expense(expense(alice, [alice, bob]))

        listing = await engine.user_expenses(carol.id)

        assert listing.items == []
        assert listing.pagination.total_items == 0
        assert listing.pagination.total_pages == 0

    @pytest.mark.asyncio
    async def test_unknown_user(self, engine):
        with pytest.raises(NotFoundError):
            await engine.user_expenses(uuid4())


class TestGroupViews:
    """Test group expense lists, membership lists and group balances"""

    @pytest.mark.asyncio
    async def test_group_expenses_exclude_other_groups(self, engine, alice, bob):
        flat = await engine.create_group(GroupCreate(name="Flat", created_by=alice.id, member_ids=[bob.id]))
        trip = await engine.create_group(GroupCreate(name="Trip", created_by=alice.id, member_ids=[bob.id]))
        await engine.record_expense(expense(alice, [alice, bob], group_id=flat.id, description="Rent"))
        await engine.record_expense(expense(alice, [alice, bob], group_id=trip.id, description="Fuel"))
        await engine.record_expense(expense(alice, [alice, bob], description="Direct"))

        listing = await engine.group_expenses(flat.id)

        assert [item.description for item in listing.items] == ["Rent"]
        assert listing.pagination.total_items == 1

    @pytest.mark.asyncio
    async def test_user_groups_are_current_only(self, engine, alice, bob):
        flat = await engine.create_group(GroupCreate(name="Flat", created_by=alice.id, member_ids=[bob.id]))
        trip = await engine.create_group(GroupCreate(name="Trip", created_by=alice.id, member_ids=[bob.id]))
        await engine.remove_group_member(trip.id, bob.id, bob.id)

        groups = await engine.user_groups(bob.id)

        assert [group.id for group in groups.groups] == [flat.id]

    @pytest.mark.asyncio
    async def test_group_balances_sum_to_zero(self, engine, alice, bob, carol):
        group = await engine.create_group(
            GroupCreate(name="Flat", created_by=alice.id, member_ids=[bob.id, carol.id])
        )
        await engine.record_expense(expense(alice, [alice, bob, carol], group_id=group.id))
        await engine.record_expense(expense(bob, [alice, bob], amount="40", group_id=group.id))
        await engine.record_expense(expense(carol, [bob, carol], amount="1000"))

        balances = {b.user_id: b.net_balance for b in (await engine.group_balances(group.id)).balances}

        assert balances == {
            alice.id: Decimal("180"),
            bob.id: Decimal("-80"),
            carol.id: Decimal("-100"),
        }
        assert sum(balances.values()) == Decimal("0")

    @pytest.mark.asyncio
    async def test_former_member_with_debt_listed_last(self, engine, alice, bob, carol):
        group = await engine.create_group(
            GroupCreate(name="Flat", created_by=alice.id, member_ids=[bob.id, carol.id])
        )
        await engine.record_expense(expense(alice, [alice, bob], group_id=group.id))
        await engine.remove_group_member(group.id, bob.id, alice.id)

        balances = (await engine.group_balances(group.id)).balances

        assert {b.user_id for b in balances[:2]} == {alice.id, carol.id}
        assert balances[-1].user_id == bob.id
        assert balances[-1].owed == Decimal("150")

    @pytest.mark.asyncio
    async def test_user_group_balances(self, engine, alice, bob, carol):
        flat = await engine.create_group(GroupCreate(name="Flat", created_by=alice.id, member_ids=[bob.id]))
        trip = await engine.create_group(GroupCreate(name="Trip", created_by=carol.id, member_ids=[bob.id]))
        await engine.record_expense(expense(alice, [alice, bob], group_id=flat.id))
        await engine.record_expense(expense(alice, [alice, bob], amount="50"))

        groups = (await engine.user_group_balances(bob.id)).groups

        assert [(g.group_name, g.net_balance) for g in groups] == [
            ("Flat", Decimal("-150")),
            ("Trip", Decimal("0")),
        ]
        assert groups[0].group_id == flat.id
        assert groups[1].group_id == trip.id

    @pytest.mark.asyncio
    async def test_unknown_group(self, engine):
        with pytest.raises(NotFoundError):
            await engine.group_expenses(uuid4())
        with pytest.raises(NotFoundError):
            await engine.group_balances(uuid4())


class TestDashboard:
    """Test the monthly summary and recent transactions"""

    @pytest.mark.asyncio
    async def test_summary_compares_months(self, engine, alice, bob):
        await engine.record_expense(expense(alice, [alice, bob], when=datetime(2024, 5, 10, 12)))
        await engine.record_expense(expense(bob, [alice, bob], amount="200", when=datetime(2024, 4, 15, 12)))
        # Outside both months
        await engine.record_expense(expense(alice, [alice, bob], when=datetime(2024, 3, 31, 12)))
        await engine.record_expense(expense(alice, [alice, bob], when=datetime(2024, 6, 1, 12)))

        summary = await engine.expense_summary(bob.id, today=date(2024, 5, 20))

        assert summary.current_month.month == "May"
        assert summary.current_month.total == Decimal("150")
        assert summary.last_month.month == "April"
        assert summary.last_month.total == Decimal("100")
        assert summary.percentage_change == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_summary_across_year_boundary(self, engine, alice, bob):
        await engine.record_expense(expense(alice, [alice, bob], when=datetime(2023, 12, 5, 12)))

        summary = await engine.expense_summary(bob.id, today=date(2024, 1, 3))

        assert (summary.last_month.month, summary.last_month.year) == ("December", 2023)
        assert summary.last_month.total == Decimal("150")
        assert summary.current_month.total == Decimal("0")
        assert summary.percentage_change == Decimal("-100.00")

    @pytest.mark.asyncio
    async def test_summary_without_last_month(self, engine, alice, bob):
        await engine.record_expense(expense(alice, [alice, bob], when=datetime(2024, 5, 10, 12)))

        summary = await engine.expense_summary(bob.id, today=date(2024, 5, 20))

        assert summary.percentage_change == Decimal("0")

    @pytest.mark.asyncio
    async def test_summary_skips_void_and_other_currencies(self, engine, alice, bob):
        voided = await engine.record_expense(expense(alice, [alice, bob], when=datetime(2024, 5, 10, 12)))
        await engine.void_expense(voided.id, VoidRequest(actor_id=alice.id))
        await engine.record_expense(
            expense(alice, [alice, bob], currency="USD", when=datetime(2024, 5, 11, 12))
        )

        summary = await engine.expense_summary(bob.id, today=date(2024, 5, 20))

        assert summary.currency == "INR"
        assert summary.current_month.total == Decimal("0")

    @pytest.mark.asyncio
    async def test_recent_transactions(self, engine, alice, bob, carol):
        for day in range(1, 8):
            await engine.record_expense(
                expense(alice, [alice, bob, carol], when=datetime(2024, 5, day, 12), description=f"Day {day}")
            )
        await engine.record_expense(
            expense(bob, [alice, bob], amount="40", when=datetime(2024, 5, 9, 12), description="Taxi")
        )

        recent = (await engine.recent_transactions(alice.id)).transactions

        assert len(recent) == 5
        assert [t.description for t in recent[:2]] == ["Taxi", "Day 7"]
        assert recent[0].amount == Decimal("-20")
        assert recent[0].is_payer is False
        assert recent[1].amount == Decimal("200")
        assert recent[1].is_payer is True

    @pytest.mark.asyncio
    async def test_recent_transactions_skip_void(self, engine, alice, bob):
        kept = await engine.record_expense(expense(alice, [alice, bob], when=datetime(2024, 5, 1, 12)))
        voided = await engine.record_expense(expense(alice, [alice, bob], when=datetime(2024, 5, 2, 12)))
        await engine.void_expense(voided.id, VoidRequest(actor_id=alice.id))

        recent = (await engine.recent_transactions(bob.id, limit=10)).transactions

        assert [t.expense_id for t in recent] == [kept.id]

    @pytest.mark.asyncio
    async def test_unknown_user(self, engine):
        with pytest.raises(NotFoundError):
            await engine.expense_summary(uuid4())
        with pytest.raises(NotFoundError):
            await engine.recent_transactions(uuid4())
