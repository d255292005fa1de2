"""重试策略实现

提供显式的重试策略对象与通用的异步重试组合器，用于回调投递等对外调用。
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """重试策略配置

    Attributes:
        max_attempts: 最大尝试次数（包含首次调用）
        initial_interval: 首次重试前的等待间隔（秒）
        backoff_coefficient: 退避系数
        maximum_interval: 最大等待间隔（秒）
        retry_on: 需要重试的异常类型
    """

    max_attempts: int = 4
    initial_interval: float = 1.0
    backoff_coefficient: float = 2.0
    maximum_interval: float = 60.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    def backoff(self, attempt: int) -> float:
        """计算第 attempt 次失败后的等待间隔

        interval = min(initial * coefficient^attempt, maximum)，attempt 从 0 开始。
        """
        interval = self.initial_interval * (self.backoff_coefficient**attempt)
        return min(interval, self.maximum_interval)

    @classmethod
    def from_retries(cls, retries: int, **kwargs) -> "RetryPolicy":
        """按“重试次数”构造策略，总尝试次数为 retries + 1"""
        return cls(max_attempts=max(0, retries) + 1, **kwargs)


@dataclass
class RetryOutcome:
    """重试执行记录"""

    attempts: int = 0
    delays: List[float] = field(default_factory=list)
    last_error: Optional[BaseException] = None


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: SleepFunc = asyncio.sleep,
    outcome: Optional[RetryOutcome] = None,
    description: str = "operation",
) -> T:
    """按策略执行异步函数，失败时退避重试

    Args:
        func: 无参异步函数
        policy: 重试策略
        sleep: 等待函数，默认 asyncio.sleep
        outcome: 可选的执行记录，用于观察尝试次数和等待间隔
        description: 日志中的操作描述

    Returns:
        函数执行结果

    Raises:
        最后一次执行的异常（所有尝试均失败时）
    """
    record = outcome if outcome is not None else RetryOutcome()
    attempts = max(1, policy.max_attempts)

    for attempt in range(attempts):
        record.attempts = attempt + 1
        try:
            return await func()
        except policy.retry_on as e:
            record.last_error = e
            if attempt >= attempts - 1:
                logger.error(
                    f"{description} 重试次数耗尽（{attempts} 次），"
                    f"最后错误: {type(e).__name__}: {e}"
                )
                raise
            interval = policy.backoff(attempt)
            record.delays.append(interval)
            logger.warning(
                f"{description} 失败: {type(e).__name__}: {e}，"
                f"第 {attempt + 1}/{attempts} 次尝试，等待 {interval:.2f}s 后重试"
            )
            await sleep(interval)

    # attempts >= 1，循环内必然 return 或 raise
    raise RuntimeError("retry loop exited unexpectedly")
