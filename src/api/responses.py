"""JSON envelope shared by every HTTP response.

Success and failure bodies both carry ``success``, ``message`` and an ISO
8601 UTC ``timestamp``; ``data`` and ``error`` are present only when set.
"""

from typing import Any

from fastapi.responses import JSONResponse

from src.core.utils import iso_timestamp


def envelope(
    success: bool,
    message: str,
    data: Any | None = None,
    error: Any | None = None,
    **extra: Any,
) -> dict:
    body: dict[str, Any] = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    body.update(extra)
    body["timestamp"] = iso_timestamp()
    return body


def success_response(message: str, data: Any | None = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope(True, message, data=data))


def error_response(
    status_code: int,
    message: str,
    error: Any | None = None,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=envelope(False, message, error=error, **extra),
        headers=headers,
    )
