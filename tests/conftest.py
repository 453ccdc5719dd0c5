"""
Pytest configuration and fixtures
"""
import itertools
import os
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import pytest

# Ensure project root is on sys.path for imports in tests
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Never reach a real model backend from unit tests
os.environ.setdefault("AI_API_KEY", "")

from subscription_app.models.subscription import (
    BillingRecord,
    BillingStatus,
    Customer,
    Plan,
    Subscription,
    SubscriptionStatus,
)
from subscription_app.services.llm_service import LLMReply, RawInvocation
from subscription_app.services.store import SubscriptionStore

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

PLAN_ROWS = [
    {"id": "basic", "name": "Basic Plan", "price": 9.99, "billing_cycle": "monthly"},
    {"id": "pro", "name": "Pro Plan", "price": 29.99, "billing_cycle": "monthly"},
    {"id": "enterprise", "name": "Enterprise Plan", "price": 99.99, "billing_cycle": "monthly"},
    {"id": "yearly-pro", "name": "Pro Plan (Yearly)", "price": 287.88, "billing_cycle": "yearly"},
]


class InMemoryStore(SubscriptionStore):
    """内存存储，行为与 SupabaseStore 一致（排序、返回 None）"""

    def __init__(self, plans: Optional[list[dict[str, Any]]] = None):
        self.customers: dict[str, dict[str, Any]] = {}
        self.plans: dict[str, dict[str, Any]] = {row["id"]: dict(row) for row in (plans or PLAN_ROWS)}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.billing: dict[str, dict[str, Any]] = {}
        self.update_calls: list[tuple[str, dict[str, Any]]] = []
        self._ticks = itertools.count(1)

    def _now(self) -> str:
        return (BASE_TIME + timedelta(seconds=next(self._ticks))).isoformat()

    # -------- 测试数据 --------
    def add_customer(self, customer_id: str = "customer-1", name: str = "Alice Johnson") -> str:
        self.customers[customer_id] = {
            "id": customer_id,
            "name": name,
            "email": f"{customer_id}@example.com",
            "created_at": self._now(),
        }
        return customer_id

    def add_subscription(self, customer_id: str, plan_id: str, status: str = "active") -> str:
        subscription_id = str(uuid.uuid4())
        row = {
            "id": subscription_id,
            "customer_id": customer_id,
            "plan_id": plan_id,
            "status": status,
            "start_date": BASE_TIME.isoformat(),
            "created_at": self._now(),
        }
        if status == "cancelled":
            row["end_date"] = BASE_TIME.isoformat()
        self.subscriptions[subscription_id] = row
        return subscription_id

    def add_billing(self, customer_id: str, subscription_id: str, amount: float, days_ago: int = 0,
                    status: str = "success") -> str:
        record_id = str(uuid.uuid4())
        self.billing[record_id] = {
            "id": record_id,
            "customer_id": customer_id,
            "subscription_id": subscription_id,
            "amount": amount,
            "status": status,
            "payment_method": "Credit Card",
            "transaction_date": (BASE_TIME + timedelta(days=365 - days_ago)).isoformat(),
        }
        return record_id

    # -------- SubscriptionStore --------
    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        row = self.customers.get(customer_id)
        return Customer.model_validate(row) if row else None

    async def list_plans(self) -> list[Plan]:
        return [Plan.model_validate(row) for row in sorted(self.plans.values(), key=lambda r: r["price"])]

    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        row = self.plans.get(plan_id)
        return Plan.model_validate(row) if row else None

    async def create_subscription(self, data: dict[str, Any]) -> Subscription:
        row = {"id": str(uuid.uuid4()), "created_at": self._now(), **data}
        self.subscriptions[row["id"]] = row
        return Subscription.model_validate(row)

    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        row = self.subscriptions.get(subscription_id)
        return Subscription.model_validate(row) if row else None

    async def update_subscription(self, subscription_id: str, updates: dict[str, Any]) -> Optional[Subscription]:
        self.update_calls.append((subscription_id, dict(updates)))
        row = self.subscriptions.get(subscription_id)
        if row is None:
            return None
        row.update(updates)
        return Subscription.model_validate(row)

    async def list_subscriptions(
        self, customer_id: str, status: Optional[SubscriptionStatus] = None
    ) -> list[Subscription]:
        rows = [
            row for row in self.subscriptions.values()
            if row["customer_id"] == customer_id and (status is None or row["status"] == status.value)
        ]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [Subscription.model_validate(row) for row in rows]

    async def insert_billing_record(self, data: dict[str, Any]) -> BillingRecord:
        row = {"id": str(uuid.uuid4()), **data}
        self.billing[row["id"]] = row
        return BillingRecord.model_validate(row)

    async def list_billing_records(
        self, customer_id: str, limit: int, status: Optional[BillingStatus] = None
    ) -> list[BillingRecord]:
        rows = [
            row for row in self.billing.values()
            if row["customer_id"] == customer_id and (status is None or row["status"] == status.value)
        ]
        rows.sort(key=lambda r: r["transaction_date"], reverse=True)
        return [BillingRecord.model_validate(row) for row in rows[:limit]]


class ScriptedLLM:
    """按顺序返回预设回复的模型替身；回复可以是文本、LLMReply 或异常"""

    def __init__(self, *replies, enabled: bool = True):
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def complete(self, messages, system_prompt=None, tools=None, temperature=0.7, max_tokens=1000) -> LLMReply:
        self.calls.append({
            "messages": list(messages),
            "system_prompt": system_prompt,
            "tools": tools,
            "temperature": temperature,
        })
        if not self.replies:
            raise AssertionError("ScriptedLLM has no replies left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            return LLMReply(text=reply)
        return reply

    async def generate_response(self, messages, system_prompt=None) -> str:
        reply = await self.complete(messages, system_prompt=system_prompt)
        return reply.text


def tool_call(name: str, arguments: str = "{}") -> LLMReply:
    return LLMReply(text="", invocation=RawInvocation(name=name, arguments=arguments), invocation_count=1)


@pytest.fixture
def store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_customer("customer-1", "Alice Johnson")
    store.add_customer("customer-2", "Bob Smith")
    return store


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()
