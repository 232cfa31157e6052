from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

MAX_SEED = 999999


@dataclass(frozen=True)
class ImageInput:
    data: bytes
    filename: str = "image.jpg"
    content_type: str = "image/jpeg"


@dataclass(frozen=True)
class TryOnRequest:
    person: ImageInput
    garment: ImageInput
    seed: int = 0


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class Job:
    task_id: str
    submitted_seed: int
    status: JobStatus = JobStatus.PENDING


class PollState(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollOutcome:
    state: PollState
    info: str
    attempts: int
    image: Optional[str] = None


@dataclass(frozen=True)
class TryOnResult:
    image: str
    seed: int
    info: str = "Success"
    is_url: bool = False
    task_id: Optional[str] = None
