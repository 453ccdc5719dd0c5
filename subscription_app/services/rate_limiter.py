#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
请求准入控制（固定窗口限流）

- 每个身份（客户端 IP）在一个窗口内最多 max_requests 次请求
- 窗口从该身份第一次请求开始计时，window 之后整体重置
  （不是滑动窗口，跨窗口边界时最多可能放行 2 倍配额）
- 检查+计数在同一身份的锁内完成，不同身份之间互不竞争
- 内部异常一律拒绝（fail closed）
"""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from typing import NamedTuple, Optional

from loguru import logger

from subscription_app.config import settings


class ClientWindowState:
    """单个身份在当前窗口内的计数"""

    __slots__ = ("identity", "window_start", "count")

    def __init__(self, identity: str, window_start: float, count: int = 1):
        self.identity = identity
        self.window_start = window_start
        self.count = count

    def __repr__(self) -> str:
        return f"ClientWindowState(identity={self.identity!r}, window_start={self.window_start}, count={self.count})"


class AdmissionDecision(NamedTuple):
    allowed: bool
    retry_after: int  # 秒，放行时为0


class WindowCounterStore(ABC):
    """按身份存储窗口计数，并提供按身份的互斥锁"""

    @abstractmethod
    def get(self, identity: str) -> Optional[ClientWindowState]: ...

    @abstractmethod
    def put(self, state: ClientWindowState) -> None: ...

    @abstractmethod
    def delete(self, identity: str) -> None: ...

    @abstractmethod
    def states(self) -> Iterator[ClientWindowState]: ...

    @abstractmethod
    def lock(self, identity: str) -> asyncio.Lock: ...

    @abstractmethod
    def __len__(self) -> int: ...


class InMemoryWindowCounterStore(WindowCounterStore):
    """进程内实现"""

    def __init__(self):
        self._states: dict[str, ClientWindowState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, identity: str) -> Optional[ClientWindowState]:
        return self._states.get(identity)

    def put(self, state: ClientWindowState) -> None:
        self._states[state.identity] = state

    def delete(self, identity: str) -> None:
        self._states.pop(identity, None)
        lock = self._locks.get(identity)
        if lock is not None and not lock.locked():
            del self._locks[identity]

    def states(self) -> Iterator[ClientWindowState]:
        # 复制一份，允许遍历时删除
        return iter(list(self._states.values()))

    def lock(self, identity: str) -> asyncio.Lock:
        lock = self._locks.get(identity)
        if lock is None:
            lock = self._locks[identity] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._states)


class RateLimiter:
    """固定窗口限流器"""

    def __init__(
        self,
        max_requests: int = 10,
        window_ms: int = 60000,
        store: Optional[WindowCounterStore] = None,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval_ms: Optional[int] = None,
    ):
        if max_requests <= 0 or window_ms <= 0:
            raise ValueError("max_requests and window_ms must be positive")

        self.max_requests = max_requests
        self.window = window_ms / 1000.0
        self.cleanup_interval = (cleanup_interval_ms or window_ms) / 1000.0
        self.store = store if store is not None else InMemoryWindowCounterStore()
        self._clock = clock
        self._cleanup_task: Optional[asyncio.Task] = None

    # -------- 基本操作 --------

    def _expired(self, state: ClientWindowState, now: float) -> bool:
        return now >= state.window_start + self.window

    def _check(self, identity: str, now: float) -> bool:
        state = self.store.get(identity)
        if state is None or self._expired(state, now):
            return True
        return state.count < self.max_requests

    def _record(self, identity: str, now: float) -> None:
        state = self.store.get(identity)
        if state is None or self._expired(state, now):
            self.store.put(ClientWindowState(identity, window_start=now, count=1))
        else:
            state.count += 1

    def _reset_in(self, identity: str, now: float) -> float:
        state = self.store.get(identity)
        if state is None:
            return 0.0
        return max(0.0, state.window_start + self.window - now)

    def allow(self, identity: str) -> bool:
        """只检查，不计数"""
        try:
            return self._check(identity, self._clock())
        except Exception as e:
            logger.error(f"限流检查失败，拒绝请求: {identity}: {e}")
            return False

    def record(self, identity: str) -> None:
        """记录一次请求"""
        try:
            self._record(identity, self._clock())
        except Exception as e:
            logger.error(f"限流计数失败: {identity}: {e}")

    def reset_in(self, identity: str) -> float:
        """距离窗口重置的秒数，无记录时为0"""
        try:
            return self._reset_in(identity, self._clock())
        except Exception as e:
            logger.error(f"获取限流重置时间失败: {identity}: {e}")
            return self.window

    async def acquire(self, identity: str) -> AdmissionDecision:
        """检查并计数（同一身份串行执行）"""
        try:
            async with self.store.lock(identity):
                now = self._clock()
                if not self._check(identity, now):
                    retry_after = max(1, math.ceil(self._reset_in(identity, now)))
                    logger.info(f"🚦 请求被限流: {identity}, {retry_after}秒后重试")
                    return AdmissionDecision(False, retry_after)
                self._record(identity, now)
                return AdmissionDecision(True, 0)
        except Exception as e:
            logger.error(f"限流器内部错误，拒绝请求: {identity}: {e}")
            return AdmissionDecision(False, max(1, math.ceil(self.window)))

    # -------- 过期清理 --------

    def cleanup(self) -> int:
        """删除已过期的窗口，返回删除数量"""
        now = self._clock()
        removed = 0
        for state in self.store.states():
            if self._expired(state, now):
                self.store.delete(state.identity)
                removed += 1
        if removed:
            logger.debug(f"限流器清理过期记录 {removed} 条，剩余 {len(self.store)} 条")
        return removed

    async def _cleanup_worker(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.cleanup_interval)
                try:
                    self.cleanup()
                except Exception as e:
                    logger.error(f"限流器清理任务异常: {e}")
        except asyncio.CancelledError:
            logger.info("限流器清理任务已取消")
            raise

    def start_cleanup(self) -> None:
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_worker())
            logger.info(f"⏰ 限流器清理任务已启动，每 {self.cleanup_interval} 秒运行一次")

    async def stop(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# 全局限流器实例（所有 /api 路由共享）
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """获取限流器实例（单例模式）"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            window_ms=settings.RATE_LIMIT_WINDOW_MS,
            cleanup_interval_ms=settings.RATE_LIMIT_CLEANUP_INTERVAL_MS,
        )
    return _rate_limiter
