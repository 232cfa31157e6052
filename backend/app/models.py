from pydantic import BaseModel

from pipeline.io_types import TryOnResult


class TryOnResponse(BaseModel):
    image: str | None
    seed: int
    info: str
    # Set when the provider hands back a hosted image instead of base64
    status: str | None = None
    task_id: str | None = None
    generated_image_url: str | None = None

    @classmethod
    def from_result(cls, result: TryOnResult) -> "TryOnResponse":
        if result.is_url:
            return cls(
                image=result.image,
                seed=result.seed,
                info=result.info,
                status="success",
                task_id=result.task_id,
                generated_image_url=result.image,
            )
        return cls(image=result.image, seed=result.seed, info=result.info)


class TryOnErrorResponse(BaseModel):
    error: str
    image: None = None
    seed: int = 0
    info: str


class AnalyzeRequest(BaseModel):
    image_url: str | None = None


class AnalyzeResponse(BaseModel):
    matching_analysis: str
