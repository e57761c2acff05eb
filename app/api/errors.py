from fastapi import HTTPException

from app.core.exceptions import WorkdeckError


def http_error(error: WorkdeckError) -> HTTPException:
    """HTTPException carrying the status code of an application error."""
    return HTTPException(status_code=error.status_code, detail=error.message)
