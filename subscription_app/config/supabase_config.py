#!/usr/bin/env python3
"""
Supabase 客户端配置
"""

from loguru import logger
from supabase import Client, create_client

from subscription_app.config import settings

_clients: dict[bool, Client] = {}


def get_supabase_client(use_service_key: bool = True) -> Client | None:
    """获取 Supabase 客户端（按 key 类型缓存）"""
    if use_service_key in _clients:
        return _clients[use_service_key]

    key = settings.SUPABASE_SERVICE_ROLE_KEY if use_service_key else settings.SUPABASE_ANON_KEY
    if not key and use_service_key:
        # 没有 service role key 时退回 anon key
        key = settings.SUPABASE_ANON_KEY

    if not settings.SUPABASE_URL or not key:
        logger.error("Supabase 配置缺失：SUPABASE_URL 或密钥未设置")
        return None

    try:
        client = create_client(settings.SUPABASE_URL, key)
    except Exception as e:
        logger.error(f"创建 Supabase 客户端失败: {e}")
        return None

    _clients[use_service_key] = client
    return client
