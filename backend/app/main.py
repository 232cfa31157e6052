import asyncio
import contextlib
import logging
import os
import threading
import time
from typing import Callable

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app as make_prom_app
from starlette.concurrency import run_in_threadpool

from pipeline.analysis import analyze_match
from pipeline.tryon import TryOnPipeline
from .config import TryOnConfig, get_config, settings
from .errors import TryOnError, UnexpectedError, ValidationError
from .intake import decode_tryon_request
from .logging_config import setup_logging
from .metrics import analysis_requests, tryon_latency, tryon_requests
from .models import AnalyzeRequest, AnalyzeResponse, TryOnErrorResponse, TryOnResponse
from .validators import enforce_max_upload_size

load_dotenv()

logger = logging.getLogger(__name__)

app = FastAPI(title="Virtual Try-On API", version="0.1.0")

origins = os.environ.get("CORS_ORIGINS", "*")
origin_list = [o.strip() for o in origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/metrics", make_prom_app())


@app.on_event("startup")
def _startup():
    setup_logging()
    app.state.config = TryOnConfig.from_settings(settings)
    cfg = app.state.config
    logger.info("Try-on API ready (provider=%s, image_store=%s)", cfg.provider, cfg.image_store)


@app.exception_handler(TryOnError)
async def _tryon_error_handler(request: Request, exc: TryOnError):
    return JSONResponse(exc.to_body(), status_code=exc.status_code)


def get_pipeline_factory() -> Callable[[TryOnConfig], TryOnPipeline]:
    return TryOnPipeline.from_config


def get_analyzer() -> Callable[..., str]:
    return analyze_match


async def _watch_disconnect(request: Request, cancel: threading.Event, interval: float = 0.5) -> None:
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling vendor polling")
            cancel.set()
            return
        await asyncio.sleep(interval)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


_ERROR_RESPONSES = {code: {"model": TryOnErrorResponse} for code in (400, 413, 415, 500, 502, 504)}


@app.post("/api/tryon", responses=_ERROR_RESPONSES)
async def tryon(
    request: Request,
    action: str | None = None,
    config: TryOnConfig = Depends(get_config),
    build_pipeline: Callable[[TryOnConfig], TryOnPipeline] = Depends(get_pipeline_factory),
    analyzer: Callable[..., str] = Depends(get_analyzer),
    _lim=Depends(enforce_max_upload_size),
):
    if action == "analyze":
        return await _analyze(request, config, analyzer)

    started = time.monotonic()
    try:
        tryon_request = await decode_tryon_request(request, config)
    except TryOnError as e:
        tryon_requests.labels(outcome=type(e).__name__).inc()
        raise

    cancel = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel))
    try:
        pipeline = build_pipeline(config)
        result = await run_in_threadpool(pipeline.run, tryon_request, cancel)
        body = TryOnResponse.from_result(result).model_dump(exclude_none=True)
    except TryOnError as e:
        if e.seed is None:
            e.seed = tryon_request.seed
        tryon_requests.labels(outcome=type(e).__name__).inc()
        raise
    except Exception as e:  # noqa: BLE001
        logger.exception("Unexpected error during try-on")
        tryon_requests.labels(outcome="UnexpectedError").inc()
        raise UnexpectedError("Unexpected error occurred", seed=0) from e
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
        tryon_latency.observe(time.monotonic() - started)

    tryon_requests.labels(outcome="success").inc()
    return JSONResponse(body)


async def _analyze(request: Request, config: TryOnConfig, analyzer: Callable[..., str]) -> AnalyzeResponse:
    try:
        body = AnalyzeRequest.model_validate(await request.json())
    except ValueError as e:
        analysis_requests.labels(outcome="invalid").inc()
        raise ValidationError("Request body must be JSON with image_url", info="Invalid request") from e
    try:
        text = await run_in_threadpool(analyzer, body.image_url, config)
    except TryOnError:
        analysis_requests.labels(outcome="error").inc()
        raise
    except Exception as e:  # noqa: BLE001
        logger.exception("Matching analysis failed")
        analysis_requests.labels(outcome="error").inc()
        raise UnexpectedError("Failed to perform matching analysis") from e
    analysis_requests.labels(outcome="success").inc()
    return AnalyzeResponse(matching_analysis=text)


@app.api_route("/api/tryon", methods=["GET", "HEAD", "OPTIONS", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def tryon_method_not_allowed():
    return JSONResponse({"error": "Method not allowed"}, status_code=405, headers={"Allow": "POST"})
