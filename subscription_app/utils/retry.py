#!/usr/bin/env python3
"""
有界重试策略：最多 max_attempts 次，第 n 次失败后等待 n × base_delay 秒
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """所有重试均失败"""

    def __init__(self, attempts: int, last_error: BaseException | None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"已重试 {attempts} 次仍失败: {last_error}")


class RetryPolicy:
    """可复用的重试策略对象，注入到需要重试的客户端中"""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.retry_on = retry_on
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """第 attempt 次（从1开始）失败后的等待时间"""
        return self.base_delay * attempt

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        last_error: BaseException | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except self.retry_on as e:
                last_error = e
                logger.warning(f"⚠️ {label} 失败 (尝试 {attempt}/{self.max_attempts}): {e}")
                if attempt < self.max_attempts:
                    wait_time = self.backoff(attempt)
                    logger.info(f"⏳ {wait_time}秒后重试...")
                    await self._sleep(wait_time)

        logger.error(f"❌ {label} 失败，已重试 {self.max_attempts} 次")
        raise RetryExhaustedError(self.max_attempts, last_error)
