from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import requests
from tenacity import (
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_before_delay,
    stop_when_event_set,
    wait_fixed,
)

from backend.app.config import TryOnConfig
from backend.app.metrics import tryon_poll_attempts
from .io_types import PollOutcome, PollState

logger = logging.getLogger(__name__)

URL_ERROR_INFO = "URL error, please contact the admin"
HTTP_TIMEOUT_INFO = "Http Timeout, please try again later"
VENDOR_ERROR_INFO = "Error processing images"
NO_IMAGE_INFO = "No image in vendor response"
TIMEOUT_INFO = "Timeout, please try again later"
CANCELLED_INFO = "Cancelled"


class QueryHTTPError(Exception):
    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"query failed with HTTP {status_code}")
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class QueryReply:
    status: str
    result: Optional[str] = None
    message: Optional[str] = None


def poll_until_done(
    query: Callable[[], QueryReply],
    config: TryOnConfig,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], object]] = None,
    task_id: Optional[str] = None,
) -> PollOutcome:
    """Wait for a submitted job to reach a terminal state.

    After ``config.initial_wait_s`` the vendor is queried at most
    ``config.max_retries`` times (and for at most ``config.max_wait_s``
    seconds when set), ``config.poll_interval_s`` apart, one request at a
    time. ``query`` raises QueryHTTPError for a non-2xx answer and
    ``requests.RequestException`` for transport failures.

    Setting ``cancel`` stops the loop before the next query; the default
    sleep waits on that event, so a cancellation also cuts a pending delay
    short.
    """
    cancel = cancel or threading.Event()
    sleep = sleep or cancel.wait
    attempts = 0
    last_error: Optional[str] = None
    extra = {"task_id": task_id}

    def attempt() -> Optional[PollOutcome]:
        nonlocal attempts, last_error
        if cancel.is_set():
            return PollOutcome(PollState.CANCELLED, CANCELLED_INFO, attempts)
        attempts += 1
        tryon_poll_attempts.inc()
        try:
            reply = query()
        except QueryHTTPError as e:
            logger.warning("Query returned HTTP %s", e.status_code, extra={**extra, "attempt": attempts})
            return PollOutcome(PollState.FAILED, URL_ERROR_INFO, attempts)
        except requests.RequestException as e:
            logger.warning("Query attempt failed: %s", e, extra={**extra, "attempt": attempts})
            last_error = HTTP_TIMEOUT_INFO
            if config.abort_on_poll_error:
                return PollOutcome(PollState.FAILED, HTTP_TIMEOUT_INFO, attempts)
            return None

        logger.debug("Query status %s", reply.status, extra={**extra, "attempt": attempts, "status": reply.status})
        if reply.status == "success":
            if not isinstance(reply.result, str) or not reply.result:
                return PollOutcome(PollState.FAILED, NO_IMAGE_INFO, attempts)
            return PollOutcome(PollState.SUCCEEDED, "Success", attempts, image=reply.result)
        if reply.status == "error":
            return PollOutcome(PollState.FAILED, reply.message or VENDOR_ERROR_INFO, attempts)
        return None

    sleep(config.initial_wait_s)
    if cancel.is_set():
        return PollOutcome(PollState.CANCELLED, CANCELLED_INFO, 0)

    stop = stop_after_attempt(config.max_retries) | stop_when_event_set(cancel)
    if config.max_wait_s is not None:
        # counts the upcoming interval, so no query starts past the budget
        stop = stop | stop_before_delay(config.max_wait_s)

    retryer = Retrying(
        stop=stop,
        wait=wait_fixed(config.poll_interval_s),
        retry=retry_if_result(lambda r: r is None),
        sleep=sleep,
        # exhausted budget: hand back the last (pending) result instead of raising
        retry_error_callback=lambda state: state.outcome.result(),
    )
    outcome = retryer(attempt)

    if outcome is None:
        if cancel.is_set():
            outcome = PollOutcome(PollState.CANCELLED, CANCELLED_INFO, attempts)
        else:
            outcome = PollOutcome(PollState.TIMED_OUT, last_error or TIMEOUT_INFO, attempts)

    level = logging.INFO if outcome.state is PollState.SUCCEEDED else logging.WARNING
    logger.log(level, "Poll finished: %s after %d attempts", outcome.state.value, outcome.attempts, extra=extra)
    return outcome
