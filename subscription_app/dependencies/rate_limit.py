#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
限流依赖
所有 /api 路由共用同一个限流器实例
"""

from fastapi import Depends, Request
from loguru import logger

from subscription_app.services.rate_limiter import RateLimiter, get_rate_limiter
from subscription_app.utils.errors import RateLimitError

UNKNOWN_CLIENT = "unknown"


def get_client_identity(request: Request) -> str:
    """按客户端IP区分请求来源"""
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


async def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """超出配额时返回 429"""
    identity = get_client_identity(request)
    decision = await limiter.acquire(identity)
    if not decision.allowed:
        logger.warning(f"🚦 {request.method} {request.url.path} 被限流: {identity}")
        raise RateLimitError.rate_limited(decision.retry_after)
