"""
订阅、套餐与账单的 Pydantic 模型
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class SubscriptionStatus(str, Enum):
    active = "active"
    cancelled = "cancelled"
    paused = "paused"


class BillingCycle(str, Enum):
    monthly = "monthly"
    yearly = "yearly"


class BillingStatus(str, Enum):
    success = "success"
    failed = "failed"
    pending = "pending"
    refunded = "refunded"


class Plan(BaseModel):
    id: str
    name: str
    description: str | None = None
    price: float
    billing_cycle: BillingCycle
    features: dict[str, Any] = Field(default_factory=dict)

    @property
    def monthly_price(self) -> float:
        """按月折算的价格，年付套餐按 12 个月均摊"""
        if self.billing_cycle == BillingCycle.yearly:
            return self.price / 12
        return self.price


class Subscription(BaseModel):
    id: str
    customer_id: str
    plan_id: str
    status: SubscriptionStatus
    start_date: datetime
    end_date: datetime | None = None
    next_billing_date: datetime | None = None
    created_at: datetime | None = None
    plan: Plan | None = None

    @model_validator(mode="after")
    def _cancelled_requires_end_date(self) -> Subscription:
        if self.status == SubscriptionStatus.cancelled and self.end_date is None:
            raise ValueError("cancelled subscription must have an end_date")
        return self

    @property
    def plan_name(self) -> str:
        return self.plan.name if self.plan else self.plan_id


class BillingRecord(BaseModel):
    id: str
    customer_id: str
    subscription_id: str
    amount: float
    status: BillingStatus
    payment_method: str | None = None
    transaction_date: datetime
    description: str | None = None
    plan_name: str | None = None


class Customer(BaseModel):
    id: str
    name: str
    email: str
    created_at: datetime | None = None
