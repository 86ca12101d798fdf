"""Uniform JSON envelope: ``{success, message?, data?, error?}``."""
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def error_response(status_code: int, error: str, message: Optional[str] = None) -> JSONResponse:
    body = {"success": False, "error": error}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
