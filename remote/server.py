from __future__ import annotations

import base64
import io
import os
import uuid

import jwt
from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from PIL import Image
from pydantic import BaseModel

app = FastAPI(title="Kolors Try-On Mock Vendor")

# Each task answers "processing" this many times before it succeeds
app.state.pending_polls = int(os.environ.get("MOCK_PENDING_POLLS", "2"))
app.state.secret = os.environ.get("ACCESS_KEY_SECRET", "mock-secret")
app.state.tasks = {}


class SubmitBody(BaseModel):
    humanImage: str
    clothImage: str
    seed: int = 0


def _check_token(authorization: str | None) -> None:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1]
    try:
        jwt.decode(token, app.state.secret, algorithms=["HS256"])
    except jwt.PyJWTError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")


def _composite(human_b64: str, cloth_b64: str) -> str:
    human = Image.open(io.BytesIO(base64.b64decode(human_b64))).convert("RGB")
    cloth = Image.open(io.BytesIO(base64.b64decode(cloth_b64))).convert("RGB")
    # Simple center overlay at half size
    w, h = human.size
    cloth.thumbnail((max(1, w // 2), max(1, h // 2)))
    gw, gh = cloth.size
    out = human.copy(); out.paste(cloth, ((w - gw) // 2, (h - gh) // 2))
    buf = io.BytesIO(); out.save(buf, format="JPEG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


@app.post("/Submit")
async def submit(body: SubmitBody, authorization: str | None = Header(None)):
    _check_token(authorization)
    try:
        image = _composite(body.humanImage, body.clothImage)
    except Exception:  # noqa: BLE001
        return JSONResponse({"result": {"status": "error", "message": "Unreadable image"}})
    task_id = uuid.uuid4().hex
    app.state.tasks[task_id] = {"remaining": app.state.pending_polls, "image": image}
    return {"result": {"status": "success", "result": task_id}}


@app.get("/Query")
async def query(taskId: str, authorization: str | None = Header(None)):
    _check_token(authorization)
    task = app.state.tasks.get(taskId)
    if task is None:
        raise HTTPException(status_code=404, detail="Unknown task")
    if task["remaining"] > 0:
        task["remaining"] -= 1
        return {"result": {"status": "processing"}}
    return {"result": {"status": "success", "result": task["image"]}}
