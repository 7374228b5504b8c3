"""JSON envelope helpers shared by all routes."""

from typing import Any, Dict

from fastapi import Response


def ok(data: Any = None) -> Dict[str, Any]:
    """Create a standardized success envelope."""
    return {"ok": True, "data": data}


def csv_response(content: str, filename: str) -> Response:
    """Return CSV text as a downloadable attachment."""
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
