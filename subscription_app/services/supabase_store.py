#!/usr/bin/env python3
"""
Supabase 存储实现

表结构：customers / plans / subscriptions / billing_history
所有客户端异常统一包装为 StoreError，详细信息只写日志。
"""

import uuid
from typing import Any, Optional, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from subscription_app.config.supabase_config import get_supabase_client
from subscription_app.models.subscription import (
    BillingRecord,
    BillingStatus,
    Customer,
    Plan,
    Subscription,
    SubscriptionStatus,
)
from subscription_app.services.store import SubscriptionStore
from subscription_app.utils.errors import StoreError

ModelT = TypeVar("ModelT", bound=BaseModel)

UPDATABLE_SUBSCRIPTION_FIELDS = {"plan_id", "status", "end_date", "next_billing_date"}


class SupabaseStore(SubscriptionStore):
    """基于 Supabase 的存储"""

    def __init__(self, client=None):
        # 使用 service role key 以绕过 RLS 策略
        self.client = client if client is not None else get_supabase_client(use_service_key=True)
        if self.client:
            logger.info("SupabaseStore 初始化完成")
        else:
            logger.error("SupabaseStore 初始化失败：无法创建 Supabase 客户端")

    def _table(self, table_name: str):
        if self.client is None:
            raise StoreError(details={"reason": "Supabase client not configured"})
        return self.client.table(table_name)

    def _fail(self, action: str, error: Exception) -> StoreError:
        if isinstance(error, StoreError):
            return error
        logger.error(f"❌ {action}失败: {type(error).__name__}: {error}")
        return StoreError(details={"action": action, "error": str(error)})

    def _to_model(self, model: type[ModelT], row: dict[str, Any], action: str) -> ModelT:
        try:
            return model.model_validate(row)
        except ValidationError as e:
            raise self._fail(f"解析{action}记录", e)

    # ==================== 通用辅助方法 ====================

    async def _get_record_by_field(self, table_name: str, field_name: str, field_value: Any) -> Optional[dict[str, Any]]:
        try:
            result = self._table(table_name).select("*").eq(field_name, field_value).limit(1).execute()
        except Exception as e:
            raise self._fail(f"从表 {table_name} 获取记录", e)
        return result.data[0] if result.data else None

    async def _create_record(self, table_name: str, data: dict[str, Any], pk_field: str = "id") -> dict[str, Any]:
        data = dict(data)
        data.setdefault(pk_field, str(uuid.uuid4()))
        try:
            result = self._table(table_name).insert(data).execute()
        except Exception as e:
            raise self._fail(f"在表 {table_name} 中创建记录", e)
        if not result.data:
            raise StoreError(details={"action": f"insert into {table_name}", "error": "no row returned"})
        logger.info(f"在表 {table_name} 中创建记录成功")
        return result.data[0]

    # ==================== 客户 ====================

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        row = await self._get_record_by_field("customers", "id", customer_id)
        return self._to_model(Customer, row, "客户") if row else None

    # ==================== 套餐 ====================

    async def list_plans(self) -> list[Plan]:
        try:
            result = self._table("plans").select("*").order("price").execute()
        except Exception as e:
            raise self._fail("获取套餐", e)
        return [self._to_model(Plan, row, "套餐") for row in result.data or []]

    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        row = await self._get_record_by_field("plans", "id", plan_id)
        return self._to_model(Plan, row, "套餐") if row else None

    # ==================== 订阅 ====================

    async def create_subscription(self, data: dict[str, Any]) -> Subscription:
        row = await self._create_record("subscriptions", data)
        return self._to_model(Subscription, row, "订阅")

    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        row = await self._get_record_by_field("subscriptions", "id", subscription_id)
        return self._to_model(Subscription, row, "订阅") if row else None

    async def update_subscription(self, subscription_id: str, updates: dict[str, Any]) -> Optional[Subscription]:
        data = {key: value for key, value in updates.items() if key in UPDATABLE_SUBSCRIPTION_FIELDS}
        if not data:
            raise StoreError(details={"action": "update subscription", "error": "no valid fields to update"})
        try:
            result = self._table("subscriptions").update(data).eq("id", subscription_id).execute()
        except Exception as e:
            raise self._fail("更新订阅", e)
        return self._to_model(Subscription, result.data[0], "订阅") if result.data else None

    async def list_subscriptions(
        self, customer_id: str, status: Optional[SubscriptionStatus] = None
    ) -> list[Subscription]:
        try:
            query = self._table("subscriptions").select("*").eq("customer_id", customer_id)
            if status is not None:
                query = query.eq("status", status.value)
            result = query.order("created_at", desc=True).execute()
        except Exception as e:
            raise self._fail("获取客户订阅", e)
        return [self._to_model(Subscription, row, "订阅") for row in result.data or []]

    # ==================== 账单 ====================

    async def insert_billing_record(self, data: dict[str, Any]) -> BillingRecord:
        row = await self._create_record("billing_history", data)
        return self._to_model(BillingRecord, row, "账单")

    async def list_billing_records(
        self, customer_id: str, limit: int, status: Optional[BillingStatus] = None
    ) -> list[BillingRecord]:
        try:
            query = self._table("billing_history").select("*").eq("customer_id", customer_id)
            if status is not None:
                query = query.eq("status", status.value)
            result = query.order("transaction_date", desc=True).limit(limit).execute()
        except Exception as e:
            raise self._fail("获取账单记录", e)
        return [self._to_model(BillingRecord, row, "账单") for row in result.data or []]


_store: Optional[SubscriptionStore] = None


def get_store() -> SubscriptionStore:
    """获取存储实例（单例模式）"""
    global _store
    if _store is None:
        _store = SupabaseStore()
    return _store
