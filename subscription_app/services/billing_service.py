#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
账单服务：记录交易、查询账单历史
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from loguru import logger

from subscription_app.config import settings
from subscription_app.models.subscription import BillingRecord, BillingStatus
from subscription_app.services.store import SubscriptionStore
from subscription_app.services.supabase_store import get_store
from subscription_app.utils.errors import ValidationError


class BillingService:
    def __init__(self, store: Optional[SubscriptionStore] = None):
        self.store = store or get_store()

    async def record_transaction(
        self,
        customer_id: str,
        subscription_id: str,
        amount: float,
        status: BillingStatus = BillingStatus.success,
        payment_method: Optional[str] = None,
        description: Optional[str] = None,
        transaction_date: Optional[datetime] = None,
    ) -> BillingRecord:
        if amount < 0:
            raise ValidationError("Transaction amount cannot be negative.", details={"amount": amount})

        record = await self.store.insert_billing_record({
            "customer_id": customer_id,
            "subscription_id": subscription_id,
            "amount": round(amount, 2),
            "status": BillingStatus(status).value,
            "payment_method": payment_method,
            "description": description,
            "transaction_date": (transaction_date or datetime.now(timezone.utc)).isoformat(),
        })
        logger.info(f"记录交易: 客户 {customer_id}, 订阅 {subscription_id}, 金额 {amount}, 状态 {record.status.value}")
        return record

    async def get_billing_history(
        self,
        customer_id: str,
        limit: Optional[int] = None,
        status: Optional[BillingStatus] = None,
    ) -> List[BillingRecord]:
        """最近的交易，最新的在前"""
        limit = limit or settings.BILLING_HISTORY_LIMIT
        if limit <= 0:
            raise ValidationError("Limit must be a positive number.", details={"limit": limit})
        return await self.store.list_billing_records(customer_id, limit=limit, status=status)

    @staticmethod
    def format_transaction(record: BillingRecord) -> dict:
        return {
            "id": record.id,
            "date": record.transaction_date.isoformat(),
            "amount": record.amount,
            "status": record.status.value,
            "paymentMethod": record.payment_method,
            "description": record.description or f"Payment for {record.plan_name or 'subscription'}",
            "planName": record.plan_name,
            "customerId": record.customer_id,
            "subscriptionId": record.subscription_id,
        }


_billing_service: Optional[BillingService] = None


async def get_billing_service() -> BillingService:
    global _billing_service
    if _billing_service is None:
        _billing_service = BillingService()
    return _billing_service
