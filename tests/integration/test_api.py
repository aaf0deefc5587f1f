"""Integration tests for the HTTP API"""

from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.schemas.user import UserResponse

API = "/api/v1"


@pytest.fixture
def expense_payload(alice: UserResponse, bob: UserResponse, carol: UserResponse) -> dict:
    """Alice pays 300 for herself, Bob and Carol"""
    return {
        "description": "Team Lunch",
        "amount": "300.00",
        "paid_by": str(alice.id),
        "split_equally": True,
        "category": "Food",
        "shares": [
            {"user_id": str(alice.id)},
            {"user_id": str(bob.id)},
            {"user_id": str(carol.id)},
        ],
    }


class TestUsersAndGroups:
    """Test directory endpoints"""

    @pytest.mark.asyncio
    async def test_create_and_get_user(self, client: AsyncClient):
        response = await client.post(
            f"{API}/users", json={"name": "Dev", "email": "dev@example.com", "timezone": "Asia/Kolkata"}
        )

        assert response.status_code == 201
        user_id = response.json()["id"]

        response = await client.get(f"{API}/users/{user_id}")
        assert response.status_code == 200
        assert response.json()["timezone"] == "Asia/Kolkata"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client: AsyncClient, alice: UserResponse):
        response = await client.post(f"{API}/users", json={"name": "A2", "email": alice.email})

        assert response.status_code == 409
        assert response.json()["error"]["type"] == "ConflictError"

    @pytest.mark.asyncio
    async def test_unknown_user_error_shape(self, client: AsyncClient):
        missing = uuid4()
        response = await client.get(f"{API}/users/{missing}")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["type"] == "NotFoundError"
        assert str(missing) in error["message"]
        assert error["path"] == f"{API}/users/{missing}"

    @pytest.mark.asyncio
    async def test_group_membership(self, client: AsyncClient, alice, bob, carol):
        response = await client.post(
            f"{API}/groups",
            json={"name": "Trip", "created_by": str(alice.id), "member_ids": [str(bob.id)]},
        )
        assert response.status_code == 201
        group_id = response.json()["id"]

        response = await client.post(
            f"{API}/groups/{group_id}/members",
            json={"user_id": str(carol.id), "actor_id": str(bob.id)},
        )
        assert response.status_code == 200
        assert len(response.json()["members"]) == 3

        response = await client.delete(
            f"{API}/groups/{group_id}/members/{bob.id}", params={"actor_id": str(alice.id)}
        )
        assert response.status_code == 200
        assert {m["id"] for m in response.json()["members"]} == {str(alice.id), str(carol.id)}


class TestExpenses:
    """Test expense endpoints"""

    @pytest.mark.asyncio
    async def test_create_expense(self, client: AsyncClient, expense_payload, alice):
        response = await client.post(f"{API}/expenses", json=expense_payload)

        assert response.status_code == 201
        data = response.json()
        assert data["paid_by"]["id"] == str(alice.id)
        assert data["currency"] == "INR"
        assert data["revision"] == 1
        assert all(Decimal(share["amount"]) == Decimal("100") for share in data["shares"])

    @pytest.mark.asyncio
    async def test_share_sum_mismatch(self, client: AsyncClient, alice, bob):
        response = await client.post(
            f"{API}/expenses",
            json={
                "description": "Dinner",
                "amount": "100",
                "paid_by": str(alice.id),
                "shares": [
                    {"user_id": str(alice.id), "amount": "60"},
                    {"user_id": str(bob.id), "amount": "30"},
                ],
            },
        )

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "ValidationError"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "abc", ""])
    async def test_malformed_amount(self, client: AsyncClient, expense_payload, amount):
        expense_payload["amount"] = amount

        response = await client.post(f"{API}/expenses", json=expense_payload)

        assert response.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "12..5"])
    async def test_malformed_share_amount(self, client: AsyncClient, alice, bob, amount):
        response = await client.post(
            f"{API}/expenses",
            json={
                "description": "Dinner",
                "amount": "100",
                "paid_by": str(alice.id),
                "shares": [
                    {"user_id": str(alice.id), "amount": "50"},
                    {"user_id": str(bob.id), "amount": amount},
                ],
            },
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_group(self, client: AsyncClient, expense_payload):
        expense_payload["group_id"] = str(uuid4())

        response = await client.post(f"{API}/expenses", json=expense_payload)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_idempotency_key(self, client: AsyncClient, expense_payload, bob):
        headers = {"Idempotency-Key": "lunch-42"}

        first = await client.post(f"{API}/expenses", json=expense_payload, headers=headers)
        second = await client.post(f"{API}/expenses", json=expense_payload, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.json()["id"] == first.json()["id"]

        balance = (await client.get(f"{API}/users/{bob.id}/balance")).json()
        assert Decimal(balance["owed"]) == Decimal("100")

        expense_payload["amount"] = "330.00"
        conflict = await client.post(f"{API}/expenses", json=expense_payload, headers=headers)
        assert conflict.status_code == 409

    @pytest.mark.asyncio
    async def test_correct_void_and_history(self, client: AsyncClient, expense_payload, alice, bob):
        expense_id = (await client.post(f"{API}/expenses", json=expense_payload)).json()["id"]

        response = await client.post(
            f"{API}/expenses/{expense_id}/corrections",
            json={
                "actor_id": str(alice.id),
                "reason": "Bob had the big plate",
                "shares": [
                    {"user_id": str(alice.id), "amount": "100"},
                    {"user_id": str(bob.id), "amount": "200"},
                ],
            },
        )
        assert response.status_code == 200
        assert response.json()["revision"] == 2

        response = await client.post(f"{API}/expenses/{expense_id}/void", json={"actor_id": str(bob.id)})
        assert response.status_code == 200
        assert response.json()["is_void"] is True

        response = await client.post(f"{API}/expenses/{expense_id}/void", json={"actor_id": str(bob.id)})
        assert response.status_code == 409

        history = (await client.get(f"{API}/expenses/{expense_id}/corrections")).json()
        assert [(c["revision"], c["kind"]) for c in history] == [(2, "ADJUST"), (3, "VOID")]

    @pytest.mark.asyncio
    async def test_settle_share(self, client: AsyncClient, expense_payload, alice, bob):
        expense = (await client.post(f"{API}/expenses", json=expense_payload)).json()
        share_id = next(s["id"] for s in expense["shares"] if s["user"]["id"] == str(bob.id))

        response = await client.post(f"{API}/expenses/{expense['id']}/shares/{share_id}/settle")

        assert response.status_code == 201
        assert response.json()["to_user_id"] == str(alice.id)

        again = await client.post(f"{API}/expenses/{expense['id']}/shares/{share_id}/settle")
        assert again.status_code == 409


class TestBalancesAndStatistics:
    """Test read endpoints"""

    @pytest.mark.asyncio
    async def test_balances(self, client: AsyncClient, expense_payload, alice, bob):
        await client.post(f"{API}/expenses", json=expense_payload)

        summary = (await client.get(f"{API}/users/{alice.id}/balance")).json()
        assert Decimal(summary["net_balance"]) == Decimal("200")

        pair = (await client.get(f"{API}/users/{bob.id}/balances/{alice.id}")).json()
        assert Decimal(pair["amount"]) == Decimal("-100")

        listing = (await client.get(f"{API}/users/{alice.id}/balances")).json()
        assert {b["type"] for b in listing["balances"]} == {"owes_you"}

        usd = (await client.get(f"{API}/users/{alice.id}/balance", params={"currency": "USD"})).json()
        assert Decimal(usd["net_balance"]) == Decimal("0")

    @pytest.mark.asyncio
    async def test_group_balance(self, client: AsyncClient, alice, bob):
        group_id = (
            await client.post(
                f"{API}/groups",
                json={"name": "Trip", "created_by": str(alice.id), "member_ids": [str(bob.id)]},
            )
        ).json()["id"]

        response = await client.get(f"{API}/groups/{group_id}/balances/{bob.id}")

        assert response.status_code == 200
        assert Decimal(response.json()["net_balance"]) == Decimal("0")

    @pytest.mark.asyncio
    async def test_statistics(self, client: AsyncClient, expense_payload, alice):
        expense_payload["date"] = "2024-03-13T12:00:00Z"
        await client.post(f"{API}/expenses", json=expense_payload)

        response = await client.get(
            f"{API}/users/{alice.id}/statistics", params={"start": "2024-03-01", "end": "2024-03-31"}
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["total_expenses"]) == Decimal("300")
        assert Decimal(data["by_category"]["Food"]) == Decimal("100")
        assert data["by_week"][0]["date"] == "2024-03-11"

    @pytest.mark.asyncio
    async def test_statistics_bad_range(self, client: AsyncClient, alice):
        response = await client.get(
            f"{API}/users/{alice.id}/statistics", params={"start": "2024-03-31", "end": "2024-03-01"}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_group_views(self, client: AsyncClient, alice, bob):
        group_id = (
            await client.post(
                f"{API}/groups",
                json={"name": "Trip", "created_by": str(alice.id), "member_ids": [str(bob.id)]},
            )
        ).json()["id"]
        await client.post(
            f"{API}/expenses",
            json={
                "description": "Fuel",
                "amount": "80",
                "paid_by": str(alice.id),
                "group_id": group_id,
                "split_equally": True,
                "shares": [{"user_id": str(alice.id)}, {"user_id": str(bob.id)}],
            },
        )

        expenses = (await client.get(f"{API}/groups/{group_id}/expenses")).json()
        assert [e["description"] for e in expenses["items"]] == ["Fuel"]

        balances = (await client.get(f"{API}/groups/{group_id}/balances")).json()
        nets = {b["user_id"]: Decimal(b["net_balance"]) for b in balances["balances"]}
        assert nets == {str(alice.id): Decimal("40"), str(bob.id): Decimal("-40")}

        groups = (await client.get(f"{API}/users/{bob.id}/groups")).json()
        assert [g["id"] for g in groups["groups"]] == [group_id]

        per_group = (await client.get(f"{API}/users/{bob.id}/group-balances")).json()
        assert per_group["groups"][0]["group_name"] == "Trip"

    @pytest.mark.asyncio
    async def test_user_expense_pages(self, client: AsyncClient, expense_payload, bob):
        await client.post(f"{API}/expenses", json=expense_payload)

        response = await client.get(f"{API}/users/{bob.id}/expenses", params={"page_size": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["items"][0]["share_type"] == "debit"
        assert Decimal(data["items"][0]["your_share"]) == Decimal("100")
        assert data["pagination"] == {"page": 1, "page_size": 1, "total_items": 1, "total_pages": 1}

    @pytest.mark.asyncio
    async def test_page_size_bounds(self, client: AsyncClient, bob):
        response = await client.get(f"{API}/users/{bob.id}/expenses", params={"page_size": 101})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_dashboard(self, client: AsyncClient, expense_payload, alice, bob):
        expense_payload["date"] = "2024-05-10T12:00:00Z"
        await client.post(f"{API}/expenses", json=expense_payload)

        summary = (
            await client.get(f"{API}/users/{bob.id}/dashboard/summary", params={"as_of": "2024-05-20"})
        ).json()
        assert summary["current_month"]["month"] == "May"
        assert Decimal(summary["current_month"]["total"]) == Decimal("100")

        recent = (await client.get(f"{API}/users/{alice.id}/dashboard/recent")).json()
        assert Decimal(recent["transactions"][0]["amount"]) == Decimal("200")

        missing = await client.get(f"{API}/users/{uuid4()}/dashboard/recent")
        assert missing.status_code == 404


class TestFeedAndNotifications:
    """Test feed and notification endpoints"""

    @pytest.mark.asyncio
    async def test_feed_and_mark_read(self, client: AsyncClient, expense_payload, bob):
        await client.post(f"{API}/expenses", json=expense_payload)
        await client.post(f"{API}/expenses", json=expense_payload)

        page = (await client.get(f"{API}/users/{bob.id}/feed", params={"limit": 1})).json()
        assert page["items"][0]["type"] == "expense"
        assert page["next_cursor"]

        rest = (
            await client.get(f"{API}/users/{bob.id}/feed", params={"cursor": page["next_cursor"]})
        ).json()
        assert len(rest["items"]) == 1
        assert rest["next_cursor"] is None

        count = (await client.get(f"{API}/users/{bob.id}/notifications/unread-count")).json()
        assert count["unread_count"] == 2

        response = await client.post(
            f"{API}/users/{bob.id}/notifications/mark-read", headers={"Idempotency-Key": "read-1"}
        )
        assert response.status_code == 200
        assert response.json()["watermark"]["id"] == page["items"][0]["id"]

        count = (await client.get(f"{API}/users/{bob.id}/notifications/unread-count")).json()
        assert count["unread_count"] == 0

    @pytest.mark.asyncio
    async def test_bad_cursor(self, client: AsyncClient, bob):
        response = await client.get(f"{API}/users/{bob.id}/feed", params={"cursor": "nope"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_message_hook(self, client: AsyncClient, alice, bob):
        response = await client.post(
            f"{API}/messages",
            json={"sender_id": str(alice.id), "recipient_ids": [str(bob.id)], "content": "hello"},
        )

        assert response.status_code == 201
        assert response.json() == {"recipient_count": 1}

        feed = (await client.get(f"{API}/users/{bob.id}/feed")).json()
        assert feed["items"][0]["message"] == "hello"


class TestOperations:
    """Test health and balance recovery endpoints"""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "cache": "disabled"}

    @pytest.mark.asyncio
    async def test_verify_and_rebuild(self, client: AsyncClient, expense_payload, alice):
        await client.post(f"{API}/expenses", json=expense_payload)

        verify = await client.get(f"{API}/admin/balances/verify")
        assert verify.status_code == 200
        assert verify.json()["mismatches"] == []

        single = await client.get(f"{API}/admin/balances/verify", params={"user_id": str(alice.id)})
        assert single.json()["user_id"] == str(alice.id)

        rebuild = await client.post(f"{API}/admin/balances/rebuild")
        assert rebuild.status_code == 200
        assert rebuild.json() == {"pairs_written": 2, "expenses_scanned": 1}
