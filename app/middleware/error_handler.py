"""
Global error handling middleware.
"""
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable

from app.domain.exceptions import (
    EvaluationNotFoundError,
    EvaluationStateError,
    InsufficientHistoryError,
    InsufficientSampleError,
    StorageError,
)
from app.infrastructure.analysis_client import AnalysisServiceError


logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, detail: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail, **extra},
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Catches domain and unhandled exceptions and returns consistent error responses.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        """
        Process the request and handle any exceptions.

        Args:
            request: The incoming request
            call_next: The next middleware or route handler

        Returns:
            Response object
        """
        context = {"path": request.url.path, "method": request.method}
        try:
            response = await call_next(request)
            return response

        except EvaluationNotFoundError as e:
            logger.info(f"Not found: {str(e)}", extra=context)
            return _error(status.HTTP_404_NOT_FOUND, "Not found", str(e))

        except InsufficientSampleError as e:
            # Recoverable: collect more trees or finalize without projection
            logger.info(f"Insufficient sample: {str(e)}", extra=context)
            return _error(
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                "Insufficient sample",
                str(e),
                sampled_count=e.sampled_count,
                required=e.required,
            )

        except InsufficientHistoryError as e:
            logger.info(f"Insufficient history: {str(e)}", extra=context)
            return _error(
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                "Insufficient history",
                str(e),
                point_count=e.point_count,
            )

        except EvaluationStateError as e:
            logger.warning(f"State conflict: {str(e)}", extra=context)
            return _error(status.HTTP_409_CONFLICT, "Conflict", str(e))

        except AnalysisServiceError as e:
            logger.error(
                f"Analysis service error: {str(e)}",
                extra={**context, "status_code": e.status_code},
            )
            # Pass through the status code chosen by the client
            return _error(e.status_code, "Analysis service error", e.message)

        except StorageError as e:
            logger.exception(f"Storage error: {str(e)}", extra=context)
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Storage error",
                "Evaluations could not be read or written",
            )

        except ValueError as e:
            logger.warning(f"Validation error: {str(e)}", extra=context)
            return _error(status.HTTP_400_BAD_REQUEST, "Invalid request", str(e))

        except Exception as e:
            logger.exception(f"Unhandled exception: {str(e)}", extra=context)
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                "An unexpected error occurred",
            )
