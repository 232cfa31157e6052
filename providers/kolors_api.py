from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import requests

from backend.app.config import TryOnConfig
from backend.app.errors import ClientDisconnected, PollTimeoutError, SubmissionError, VendorError
from pipeline.io_types import Job, JobStatus, PollOutcome, PollState, TryOnRequest, TryOnResult
from pipeline.poll import QueryHTTPError, QueryReply, poll_until_done
from .base import ImageStore
from .credentials import bearer_headers, issue_vendor_token

logger = logging.getLogger(__name__)


def _ok(resp: Any) -> bool:
    return 200 <= resp.status_code < 300


def _result_object(resp: Any) -> dict:
    try:
        payload = resp.json()
    except ValueError as e:
        raise VendorError("Unexpected response type from try-on API", info="Unexpected response") from e
    if isinstance(payload, dict) and isinstance(payload.get("result"), dict):
        return payload["result"]
    raise VendorError("Unexpected response from try-on API", info="Unexpected response")


class KolorsClient:
    """
    Thin client for the Kolors virtual try-on API.
    - ``POST {base}/Submit`` with ``{humanImage, clothImage, seed}`` returns a task id.
    - ``GET {base}/Query?taskId=...`` reports ``processing``, ``success`` or ``error``.
    Both calls answer with ``{"result": {"status": ..., "result": ...}}``.
    """

    def __init__(self, base_url: str, headers: dict[str, str], timeout: float, session: Any = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers
        self.timeout = timeout
        self.session = session or requests.Session()

    def submit(self, human_image: str, cloth_image: str, seed: int) -> str:
        payload = {"humanImage": human_image, "clothImage": cloth_image, "seed": seed}
        try:
            resp = self.session.post(f"{self.base_url}/Submit", json=payload, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise SubmissionError(f"Error during job submission: {e}") from e
        if not _ok(resp):
            raise SubmissionError(f"Error during job submission: {resp.text}", status_code=resp.status_code)
        result = _result_object(resp)
        status = result.get("status")
        if status != "success":
            raise VendorError("Try-on API returned an error during submission", info=str(status))
        task_id = result.get("result")
        if not task_id:
            raise VendorError("Try-on API returned no task id", info="Submission error")
        return str(task_id)

    def query(self, task_id: str) -> QueryReply:
        resp = self.session.get(
            f"{self.base_url}/Query",
            params={"taskId": task_id},
            headers=self.headers,
            timeout=self.timeout,
        )
        if not _ok(resp):
            raise QueryHTTPError(resp.status_code, resp.text[:200])
        result = _result_object(resp)
        return QueryReply(
            status=str(result.get("status", "")),
            result=result.get("result"),
            message=result.get("message"),
        )


def result_from_outcome(outcome: PollOutcome, job: Job) -> TryOnResult:
    """Map a terminal poll state to the value returned to the caller.

    Every state yields exactly one result or one raised TryOnError.
    """
    if outcome.state is PollState.SUCCEEDED:
        job.status = JobStatus.SUCCESS
        return TryOnResult(image=outcome.image or "", seed=job.submitted_seed, info="Success", task_id=job.task_id)
    job.status = JobStatus.FAILED
    if outcome.state is PollState.FAILED:
        raise VendorError(outcome.info, info=outcome.info, seed=job.submitted_seed)
    if outcome.state is PollState.TIMED_OUT:
        raise PollTimeoutError(outcome.info, info=outcome.info, seed=job.submitted_seed)
    raise ClientDisconnected("Client disconnected before the job finished", seed=job.submitted_seed)


class KolorsSubmitPoll:
    name = "kolors"

    def __init__(
        self,
        config: TryOnConfig,
        store: ImageStore,
        session: Any = None,
        sleep: Optional[Callable[[float], object]] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.session = session
        self.sleep = sleep

    def run(self, request: TryOnRequest, cancel: threading.Event) -> TryOnResult:
        # Token first: missing credentials must fail before any network call
        token = issue_vendor_token(self.config)
        base_url, _, _ = self.config.require_kolors()
        client = KolorsClient(base_url, bearer_headers(token), self.config.http_timeout_s, session=self.session)

        human = self.store.put(request.person.data, request.person.filename, request.person.content_type)
        cloth = self.store.put(request.garment.data, request.garment.filename, request.garment.content_type)

        task_id = client.submit(human, cloth, request.seed)
        job = Job(task_id=task_id, submitted_seed=request.seed)
        logger.info("Submitted try-on job", extra={"task_id": task_id})

        outcome = poll_until_done(
            lambda: client.query(task_id),
            self.config,
            cancel=cancel,
            sleep=self.sleep,
            task_id=task_id,
        )
        return result_from_outcome(outcome, job)
