"""
Unit tests for SupabaseStore with a fake query builder
"""
from types import SimpleNamespace

import pytest

from subscription_app.models.subscription import SubscriptionStatus
from subscription_app.services.supabase_store import SupabaseStore
from subscription_app.utils.errors import ErrorCode, StoreError


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return record

    def execute(self):
        self.client.executed.append((self.table, self.calls))
        if self.client.error:
            raise self.client.error
        return SimpleNamespace(data=self.client.rows.get(self.table, []))


class FakeClient:
    def __init__(self, rows=None, error=None):
        self.rows = rows or {}
        self.error = error
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)


SUBSCRIPTION_ROW = {
    "id": "sub-1",
    "customer_id": "customer-1",
    "plan_id": "pro",
    "status": "active",
    "start_date": "2024-01-01T00:00:00+00:00",
}


@pytest.mark.asyncio
async def test_list_subscriptions_filters_and_orders():
    client = FakeClient(rows={"subscriptions": [SUBSCRIPTION_ROW]})
    store = SupabaseStore(client)

    subscriptions = await store.list_subscriptions("customer-1", status=SubscriptionStatus.active)

    assert [s.id for s in subscriptions] == ["sub-1"]
    table, calls = client.executed[0]
    assert table == "subscriptions"
    assert ("eq", ("customer_id", "customer-1"), {}) in calls
    assert ("eq", ("status", "active"), {}) in calls
    assert ("order", ("created_at",), {"desc": True}) in calls


@pytest.mark.asyncio
async def test_get_missing_record_returns_none():
    store = SupabaseStore(FakeClient())

    assert await store.get_customer("nobody") is None
    assert await store.get_subscription("missing") is None


@pytest.mark.asyncio
async def test_create_subscription_generates_id():
    client = FakeClient(rows={"subscriptions": [SUBSCRIPTION_ROW]})
    store = SupabaseStore(client)

    await store.create_subscription({"customer_id": "customer-1", "plan_id": "pro"})

    _, calls = client.executed[0]
    name, args, _ = calls[0]
    assert name == "insert"
    assert args[0]["id"]


@pytest.mark.asyncio
async def test_client_errors_are_wrapped():
    store = SupabaseStore(FakeClient(error=ConnectionError("connection refused")))

    with pytest.raises(StoreError) as exc_info:
        await store.list_plans()

    assert exc_info.value.code == ErrorCode.DATABASE_ERROR
    assert "connection refused" not in exc_info.value.message
    assert exc_info.value.details["error"] == "connection refused"


@pytest.mark.asyncio
@pytest.mark.parametrize("call", [
    lambda store: store.list_subscriptions("customer-1"),
    lambda store: store.list_plans(),
])
async def test_invalid_rows_are_wrapped(call):
    rows = {
        "subscriptions": [dict(SUBSCRIPTION_ROW, status="cancelled", end_date=None)],
        "plans": [{"id": "pro", "name": "Pro Plan", "price": None, "billing_cycle": "monthly"}],
    }
    store = SupabaseStore(FakeClient(rows=rows))

    with pytest.raises(StoreError) as exc_info:
        await call(store)

    assert exc_info.value.code == ErrorCode.DATABASE_ERROR
    assert exc_info.value.details["action"].startswith("解析")


@pytest.mark.asyncio
async def test_update_ignores_unknown_fields():
    client = FakeClient(rows={"subscriptions": [SUBSCRIPTION_ROW]})
    store = SupabaseStore(client)

    with pytest.raises(StoreError):
        await store.update_subscription("sub-1", {"customer_id": "someone-else"})
    assert client.executed == []
