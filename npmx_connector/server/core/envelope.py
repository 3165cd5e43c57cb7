from __future__ import annotations

from typing import Any, Dict, Optional


def success(data: Any = None) -> Dict[str, Any]:
    return {"success": True, "data": data}


def failure(
    error: str,
    *,
    code: Optional[str] = None,
    details: Any = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": error}
    if code:
        body["code"] = code
    if details is not None:
        body["details"] = details
    if request_id:
        body["request_id"] = request_id
    return body
