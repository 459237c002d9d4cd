"""
Write retry policy for storage updates.
"""

from dataclasses import dataclass
from typing import Callable, TypeVar

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..models.store import StorageWriteError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often a failed write is retried before it is reported.

    Only StorageWriteError is retried; anything else propagates on the first
    attempt. The default of zero retries surfaces failures immediately and
    leaves retrying to the next (idempotent) run.
    """

    max_retries: int = 0
    wait_min: float = 0.5
    wait_max: float = 8.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.write_retries,
            wait_min=settings.retry_wait_min,
            wait_max=settings.retry_wait_max,
        )

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        retryer = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.wait_min, min=self.wait_min, max=self.wait_max),
            retry=retry_if_exception_type(StorageWriteError),
            reraise=True,
        )
        return retryer(fn, *args, **kwargs)
