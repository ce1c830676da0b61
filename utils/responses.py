"""
Envelope estándar de la API: {success, data | error, message?, timestamp}
"""
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from utils.timezone import utcnow


def success_response(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    content = {"success": True, "data": data, "timestamp": utcnow()}
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def error_response(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": False, "error": error, "timestamp": utcnow()}),
    )
