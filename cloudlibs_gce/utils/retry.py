# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Bounded retry logic for cloud control-plane operations.

Network interface and forwarding rule updates are asynchronous on the
cloud side and frequently report "resource is not ready" while a previous
change is still propagating. This module retries such operations a fixed
number of times with a fixed interval between attempts.

Features:
- Fixed retry count (attempts = max_retries + 1)
- Fixed interval, with optional jitter to spread out simultaneous retries
- Only remote/transient errors are retried; everything else fails fast

Example:
    >>> handler = RetryHandler(RetryConfig(max_retries=4, interval=15.0))
    >>>
    >>> async def update():
    ...     return await compute.update_network_interface(zone, vm, nic, body)
    >>>
    >>> result = await handler.execute_with_retry(update)
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

import aiohttp

from cloudlibs_gce.exceptions import RemoteServiceError, RetryExhaustedError
from cloudlibs_gce.utils.logger import logger as default_logger

T = TypeVar("T")

DEFAULT_RETRYABLE_EXCEPTIONS = (
    RemoteServiceError,
    asyncio.TimeoutError,
    aiohttp.ClientError,
)


@dataclass
class RetryConfig:
    """Configuration for bounded retries.

    Attributes:
        max_retries: Number of retries after the first attempt
        interval: Seconds to wait between attempts
        jitter: Randomize each wait between 50% and 150% of interval
    """

    max_retries: int = 4
    interval: float = 15.0
    jitter: bool = False


class RetryHandler:
    """
    Runs an async callable until it succeeds or retries are exhausted.

    Attributes:
        config: Retry configuration settings
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or RetryConfig()
        self.logger = logger or default_logger

    def _calculate_delay(self) -> float:
        """Delay before the next attempt, in seconds."""
        delay = self.config.interval
        if self.config.jitter:
            delay = delay * (0.5 + random.random())
        return delay

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        retryable_exceptions: Optional[tuple[Type[BaseException], ...]] = None,
        **kwargs: Any,
    ) -> T:
        """
        Execute a function with retry logic.

        Args:
            func: Async function to execute
            *args: Positional arguments for func
            retryable_exceptions: Tuple of exception types to retry on
            **kwargs: Keyword arguments for func

        Returns:
            Result from func

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error
            Exception: Any non-retryable error, immediately
        """
        if retryable_exceptions is None:
            retryable_exceptions = DEFAULT_RETRYABLE_EXCEPTIONS

        attempts = self.config.max_retries + 1
        last_exception: Optional[BaseException] = None

        for attempt in range(attempts):
            try:
                result = await func(*args, **kwargs)

                if attempt > 0:
                    self.logger.info(f"Operation succeeded after {attempt} retries")

                return result

            except retryable_exceptions as e:
                last_exception = e

                if attempt >= self.config.max_retries:
                    self.logger.error(
                        f"Max retries ({self.config.max_retries}) exceeded. "
                        f"Last error: {e}"
                    )
                    break

                delay = self._calculate_delay()
                self.logger.warning(
                    f"Operation failed (attempt {attempt + 1}/{attempts}): {e}. "
                    f"Retrying in {delay:.2f}s..."
                )
                await asyncio.sleep(delay)

        raise RetryExhaustedError(
            f"Operation failed after {self.config.max_retries} retries. "
            f"Last error: {last_exception}",
            attempts=attempts,
            last_error=last_exception,
        ) from last_exception
