"""
Compliance Reading Engine - API Routers
Version: 1.0.0
"""

from fastapi import HTTPException

from services.errors import FormsError


def http_error(exc: FormsError) -> HTTPException:
    """Map an engine failure onto its HTTP status"""
    detail = {"message": exc.message, "details": exc.details} if exc.details else exc.message
    return HTTPException(status_code=exc.status_code, detail=detail)
