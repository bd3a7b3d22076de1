# railcam/services/common_fetch.py
from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

T = TypeVar("T")
FetchFn = Callable[[], tuple[T | None, str | None]]


def fetch_with_retry(
    fetch: FetchFn,
    *,
    attempts: int = 1,
    delay: float = 0.0,
    should_retry: Callable[[str | None], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[T | None, str | None, int]:
    """Run `fetch` at most `attempts` times.

    `fetch` returns (data, error). Returns (data, last_error, attempts_used).
    When `should_retry` rejects an error the loop stops early.
    """
    last_error: str | None = None
    attempts = max(1, attempts)

    for i in range(attempts):
        data, err = fetch()
        if data is not None:
            return data, None, i + 1
        last_error = err
        if should_retry is not None and not should_retry(err):
            return None, last_error, i + 1
        if i < attempts - 1 and delay > 0:
            sleep(delay)

    return None, last_error, attempts
