import base64
import dataclasses
import threading

import jwt
import pytest
import requests

from backend.app.errors import ClientDisconnected, ConfigurationError, PollTimeoutError, SubmissionError, VendorError
from backend.app.storage import InlineImageStore
from pipeline.io_types import ImageInput, Job, JobStatus, PollOutcome, PollState, TryOnRequest
from providers.kolors_api import KolorsClient, KolorsSubmitPoll, result_from_outcome

from conftest import FakeResponse, FakeSession, query_reply, submit_reply


def _request(seed=42):
    return TryOnRequest(
        person=ImageInput(b"person-bytes", "person.jpg", "image/jpeg"),
        garment=ImageInput(b"garment-bytes", "garment.jpg", "image/jpeg"),
        seed=seed,
    )


def test_submit_posts_inline_images_with_bearer_token(config, sleeps):
    session = FakeSession(post=submit_reply(task_id="abc"), gets=[query_reply("success", "UkVTVUxU")])
    provider = KolorsSubmitPoll(config, InlineImageStore(), session=session, sleep=sleeps.append)

    result = provider.run(_request(), threading.Event())

    assert result.image == "UkVTVUxU"
    assert result.seed == 42
    assert result.task_id == "abc"
    url, kwargs = session.posts[0]
    assert url == "https://vendor.test/kolors/Submit"
    assert kwargs["json"] == {
        "humanImage": base64.b64encode(b"person-bytes").decode(),
        "clothImage": base64.b64encode(b"garment-bytes").decode(),
        "seed": 42,
    }
    assert kwargs["headers"]["Content-Type"] == "application/json"
    token = kwargs["headers"]["Authorization"].split(" ", 1)[1]
    assert jwt.decode(token, "test-key-secret", algorithms=["HS256"])["iss"] == "test-key-id"

    query_url, query_kwargs = session.gets[0]
    assert query_url == "https://vendor.test/kolors/Query"
    assert query_kwargs["params"] == {"taskId": "abc"}
    assert query_kwargs["headers"] == kwargs["headers"]


def test_submit_http_error_carries_body_and_status(config):
    session = FakeSession(post=FakeResponse(status_code=403, text="quota exceeded"))
    client = KolorsClient(config.kolors_api_url, {}, 5, session=session)
    with pytest.raises(SubmissionError) as exc:
        client.submit("a", "b", 1)
    assert exc.value.status_code == 403
    assert "quota exceeded" in exc.value.error
    assert exc.value.info == "Submission error"


def test_submit_network_error(config):
    session = FakeSession(post=requests.ConnectionError("refused"))
    client = KolorsClient(config.kolors_api_url, {}, 5, session=session)
    with pytest.raises(SubmissionError):
        client.submit("a", "b", 1)


def test_submit_non_success_status_is_vendor_error(config, sleeps):
    session = FakeSession(post=submit_reply(status="error"))
    provider = KolorsSubmitPoll(config, InlineImageStore(), session=session, sleep=sleeps.append)
    with pytest.raises(VendorError) as exc:
        provider.run(_request(), threading.Event())
    assert exc.value.info == "error"
    assert session.gets == []
    assert sleeps == []


def test_submit_malformed_json(config):
    session = FakeSession(post=FakeResponse(status_code=200, json_data=None, text="<html>"))
    client = KolorsClient(config.kolors_api_url, {}, 5, session=session)
    with pytest.raises(VendorError):
        client.submit("a", "b", 1)


def test_missing_secret_fails_before_any_call(config, sleeps):
    cfg = dataclasses.replace(config, access_key_secret=None)
    session = FakeSession(post=submit_reply())
    provider = KolorsSubmitPoll(cfg, InlineImageStore(), session=session, sleep=sleeps.append)
    with pytest.raises(ConfigurationError) as exc:
        provider.run(_request(), threading.Event())
    assert exc.value.info == "Configuration error"
    assert session.posts == []


def _job():
    return Job(task_id="t1", submitted_seed=7)


def test_result_mapping_success():
    job = _job()
    result = result_from_outcome(PollOutcome(PollState.SUCCEEDED, "Success", 2, image="img"), job)
    assert (result.image, result.seed, result.info) == ("img", 7, "Success")
    assert job.status is JobStatus.SUCCESS


@pytest.mark.parametrize(
    "state, error_type, status",
    [
        (PollState.FAILED, VendorError, 500),
        (PollState.TIMED_OUT, PollTimeoutError, 504),
        (PollState.CANCELLED, ClientDisconnected, 499),
    ],
)
def test_result_mapping_failures(state, error_type, status):
    job = _job()
    with pytest.raises(error_type) as exc:
        result_from_outcome(PollOutcome(state, "why", 3), job)
    assert exc.value.status_code == status
    assert exc.value.seed == 7
    assert job.status is JobStatus.FAILED
