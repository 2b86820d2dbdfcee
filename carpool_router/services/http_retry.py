import logging
import time
from typing import Any, Callable, Dict, Optional

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from carpool_router.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A provider answered, but not with something usable"""


class TransientProviderError(ProviderError):
    """Timeouts, connection failures, HTTP 429 and 5xx; worth retrying"""


class RetryPolicy:
    def __init__(self, attempts: int = 3, backoff_s: float = 1.0, backoff_max_s: float = 5.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.attempts = max(1, attempts)
        self.backoff_s = backoff_s
        self.backoff_max_s = backoff_max_s
        self.sleep = sleep

    def retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_s, max=self.backoff_max_s),
            retry=retry_if_exception_type(TransientProviderError),
            reraise=True,
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        return self.retrying()(fn, *args, **kwargs)


def fetch_json(
    session: requests.Session,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 10.0,
    rate_limiter: Optional[RateLimiter] = None,
) -> Any:
    """GET a JSON document, classifying failures as transient or permanent"""
    if rate_limiter is not None:
        rate_limiter.acquire()

    try:
        response = session.get(url, params=params, headers=headers, timeout=timeout)
    except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
        raise TransientProviderError(f"{url} unreachable: {e}") from e
    except requests.exceptions.RequestException as e:
        raise ProviderError(f"{url} request failed: {e}") from e

    if response.status_code == 429 or response.status_code >= 500:
        raise TransientProviderError(f"{url} returned HTTP {response.status_code}")
    if response.status_code >= 400:
        raise ProviderError(f"{url} returned HTTP {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"{url} returned invalid JSON") from e
