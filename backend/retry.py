import asyncio
import functools
import inspect
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional

from errors import (
    TRANSIENT_CAUSES,
    ConfigurationError,
    DemoError,
    RelayError,
    classify_failure,
    suggestions_for,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds
DEFAULT_RETRY_MAX_DELAY = 5.0  # seconds
DEFAULT_RETRY_MODE = "all"

RETRY_MODES = ("all", "transient")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often and how patiently a wrapped operation is retried.

    ``mode="all"`` retries every failure identically. ``mode="transient"``
    only retries connectivity and rate-limit failures.
    """

    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    base_delay: float = DEFAULT_RETRY_BASE_DELAY
    max_delay: float = DEFAULT_RETRY_MAX_DELAY
    mode: str = DEFAULT_RETRY_MODE

    def delay_for(self, attempt: int) -> float:
        """Backoff to wait after failed ``attempt`` (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def should_retry(self, exc: BaseException) -> bool:
        if self.mode == "all":
            return True
        if isinstance(exc, ConfigurationError):
            return False
        return classify_failure(exc) in TRANSIENT_CAUSES

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RetryPolicy":
        if env is None:
            env = os.environ
        errors: List[str] = []

        def number(name: str, default, cast):
            raw = env.get(name)
            if not raw:
                return default
            try:
                value = cast(raw)
            except ValueError:
                value = 0
            if value <= 0:
                errors.append(f"{name} must be a positive number")
                return default
            return value

        attempts = number("RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS, int)
        base_delay = number("RETRY_BASE_DELAY", DEFAULT_RETRY_BASE_DELAY, float)
        max_delay = number("RETRY_MAX_DELAY", DEFAULT_RETRY_MAX_DELAY, float)
        mode = (env.get("RETRY_MODE") or DEFAULT_RETRY_MODE).strip().lower()
        if mode not in RETRY_MODES:
            errors.append(f"RETRY_MODE must be one of {', '.join(RETRY_MODES)}")
            mode = DEFAULT_RETRY_MODE
        if errors:
            raise ConfigurationError.from_errors("Retry configuration invalid", errors)
        return cls(max_attempts=attempts, base_delay=base_delay, max_delay=max_delay, mode=mode)


def _final_error(context: str, exc: BaseException) -> DemoError:
    suggestions = suggestions_for(exc)
    if isinstance(exc, DemoError):
        message = exc.message
        for s in exc.suggestions:
            if s not in suggestions:
                suggestions.append(s)
    else:
        message = str(exc) or exc.__class__.__name__
    message = f"[{context}] {message}"

    if not isinstance(exc, DemoError):
        return DemoError(message, exc, code="OPERATION_FAILED", suggestions=suggestions)

    extra = {}
    if isinstance(exc, ConfigurationError):
        extra["errors"] = exc.errors
    if isinstance(exc, RelayError):
        extra["status_code"] = exc.status_code
    return exc.__class__(message, exc, code=exc.code, suggestions=suggestions, **extra)


def _resolve_policy(policy: Optional[RetryPolicy], args: tuple) -> RetryPolicy:
    """
    Pick the policy for one call.

    An explicit policy wins. Otherwise the first positional argument is
    checked for validated settings (``arg.retry`` or ``arg.settings.retry``),
    so sessions, settings and the demo runner carry their own policy. The
    environment is read only when neither is available.
    """
    if policy is not None:
        return policy
    if args:
        first = args[0]
        for candidate in (getattr(first, "retry", None), getattr(getattr(first, "settings", None), "retry", None)):
            if isinstance(candidate, RetryPolicy):
                return candidate
    return RetryPolicy.from_env()


def with_error_handling(context: str, policy: Optional[RetryPolicy] = None) -> Callable:
    """
    Retry the decorated operation with exponential backoff.

    Works for plain functions and coroutine functions. After the last attempt
    the failure is re-raised as a DemoError of the same category, its message
    prefixed with ``[context]`` and carrying remediation suggestions.

    Args:
        context (str): Operation name used in log lines and the final message
        policy (RetryPolicy): Fixed policy; taken from the call's settings when omitted
    """

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                active = _resolve_policy(policy, args)
                attempt = 1
                while True:
                    try:
                        return await func(*args, **kwargs)
                    except Exception as e:
                        if attempt >= active.max_attempts or not active.should_retry(e):
                            raise _final_error(context, e) from e
                        delay = active.delay_for(attempt)
                        logger.warning(f"[{context}] attempt {attempt} failed: {e}. Retrying in {delay}s...")
                        await asyncio.sleep(delay)
                        attempt += 1

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            active = _resolve_policy(policy, args)
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if attempt >= active.max_attempts or not active.should_retry(e):
                        raise _final_error(context, e) from e
                    delay = active.delay_for(attempt)
                    logger.warning(f"[{context}] attempt {attempt} failed: {e}. Retrying in {delay}s...")
                    time.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
