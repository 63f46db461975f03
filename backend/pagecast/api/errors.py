# backend/pagecast/api/errors.py
from fastapi import HTTPException

from ..errors import ErrorKind, PagecastError

STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DELETE_FAILED: 409,
    ErrorKind.EXTRACTION_FAILED: 422,
    ErrorKind.CREATION_FAILED: 422,
}


def to_http_exception(error: PagecastError) -> HTTPException:
    """Map a domain failure onto the HTTP status the client sees"""
    kind = error.kind
    # Creation wraps its cause; a persistence cause is a server-side failure
    if kind == ErrorKind.CREATION_FAILED and isinstance(error.cause, PagecastError):
        if error.cause.kind != ErrorKind.EXTRACTION_FAILED:
            kind = error.cause.kind
    return HTTPException(
        status_code=STATUS_BY_KIND.get(kind, 502),
        detail={"error_kind": error.kind.value, "message": str(error)}
    )
