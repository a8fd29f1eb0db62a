from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
import traceback
from .logger import logger


class PlateCheckBaseException(Exception):
    """Base exception for the meal analysis service"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class UnauthorizedError(PlateCheckBaseException):
    """Raised when a credential is missing or wrong"""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "UNAUTHORIZED", 401)


class QuotaExceededError(PlateCheckBaseException):
    """Raised when a free plan user has used up the analysis quota"""
    def __init__(self, usage_count: int, limit: int):
        self.usage_count = usage_count
        self.limit = limit
        super().__init__(
            f"Free plan usage limit reached ({usage_count}/{limit})",
            "USAGE_LIMIT_EXCEEDED",
            403,
        )


class InvalidRequestError(PlateCheckBaseException):
    """Raised when a request is missing a required value or carries a bad one"""
    def __init__(self, message: str, code: str = "MISSING_PARAMETER"):
        super().__init__(message, code, 400)


class JobNotFoundError(PlateCheckBaseException):
    """Raised when job is not found or belongs to another user"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found", "JOB_NOT_FOUND", 404)


class PersistenceError(PlateCheckBaseException):
    """Raised when a database read or write cannot be committed"""
    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, "PERSISTENCE_ERROR", 500)


class S3StorageError(PlateCheckBaseException):
    """Raised when S3 operations fail"""
    def __init__(self, message: str = "S3 storage operation failed"):
        super().__init__(message, "S3_STORAGE_ERROR", 502)


class UnknownAnalyzerError(PlateCheckBaseException):
    """Raised when the analyzer calls back with a payload we cannot use"""
    def __init__(self, message: str = "Malformed analyzer payload"):
        super().__init__(message, "UNKNOWN_ANALYZER_ERROR", 422)


class DispatchError(PlateCheckBaseException):
    """
    Raised by the worker when the analyzer rejects or never receives a job.

    Never rendered to a client: the submitter has already been answered.
    """
    def __init__(self, job_id: str, message: str = "Failed to dispatch job to analyzer"):
        self.job_id = job_id
        super().__init__(message, "DISPATCH_FAILED", 502)


async def platecheck_exception_handler(request: Request, exc: PlateCheckBaseException):
    """Handle custom application exceptions"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "status_code": exc.status_code,
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": exc.detail,
            "status_code": exc.status_code,
        },
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "message": "An internal error occurred. Please try again later.",
        }
    )
