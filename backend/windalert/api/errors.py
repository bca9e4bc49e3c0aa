"""Structured error bodies for validation failures."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

# Leading loc entries FastAPI adds that are not field names
_LOC_PREFIXES = ("body", "query", "path", "header")


def field_errors(errors: list[dict]) -> list[dict[str, str]]:
    """Flatten pydantic error dicts into [{field, message}]."""
    details = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        if len(loc) > 1 and loc[0] in _LOC_PREFIXES:
            loc = loc[1:]
        details.append({
            "field": ".".join(loc) or "body",
            "message": err.get("msg", "invalid value"),
        })
    return details


def bad_request(error: str, details: list[dict[str, str]], headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": error, "details": details},
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return bad_request("Invalid request", field_errors(exc.errors()))
