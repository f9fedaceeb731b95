"""Error handling middleware for FastAPI."""

import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException

from src.api.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


async def error_handling_middleware(request: Request, call_next: Callable) -> Response:
    """
    Catch exceptions and return standardized JSON error responses.

    Handles different exception types:
    - ValueError → 400 Bad Request
    - HTTPException → passthrough with original status
    - IntegrityError (SQLAlchemy) → 409 Conflict
    - Other SQLAlchemyError → 500 (a queue or generator run aborted on the database)
    - Exception → 500 Internal Server Error

    Args:
        request: Incoming FastAPI request
        call_next: Next middleware/handler in chain

    Returns:
        Response object (either success or error JSON)
    """
    request_id = getattr(request.state, "request_id", None)

    try:
        response: Response = await call_next(request)
        return response

    except ValueError as e:
        logger.warning(
            "validation_error: path=%s, error=%s, request_id=%s", request.url.path, e, request_id
        )
        error = ErrorResponse(error="validation_error", message=str(e), request_id=request_id)
        return JSONResponse(status_code=400, content=error.model_dump())

    except HTTPException as e:
        logger.info(
            "http_exception: path=%s, status=%s, detail=%s, request_id=%s",
            request.url.path,
            e.status_code,
            e.detail,
            request_id,
        )
        error = ErrorResponse(error="http_error", message=str(e.detail), request_id=request_id)
        return JSONResponse(status_code=e.status_code, content=error.model_dump())

    except IntegrityError as e:
        logger.warning(
            "integrity_error: path=%s, error=%s, request_id=%s", request.url.path, e, request_id
        )
        error = ErrorResponse(
            error="conflict",
            message="Resource conflict or constraint violation",
            details={"db_error": str(e.orig) if hasattr(e, "orig") else str(e)},
            request_id=request_id,
        )
        return JSONResponse(status_code=409, content=error.model_dump())

    except SQLAlchemyError:
        logger.exception("database_error: path=%s, request_id=%s", request.url.path, request_id)
        error = ErrorResponse(
            error="database_error",
            message="The database operation failed; the run was aborted",
            request_id=request_id,
        )
        return JSONResponse(status_code=500, content=error.model_dump())

    except Exception:
        logger.exception("internal_error: path=%s, request_id=%s", request.url.path, request_id)
        error = ErrorResponse(
            error="internal_error",
            message="An unexpected error occurred",
            request_id=request_id,
        )
        return JSONResponse(status_code=500, content=error.model_dump())
