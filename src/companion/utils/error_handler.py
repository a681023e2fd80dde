"""
Error taxonomy and classification for the Companion service.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import openai
from fastapi import HTTPException, status
from httpx import ConnectError, HTTPError, TimeoutException
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Error categories for classification."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    LLM_SERVICE = "llm_service"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    NETWORK = "network"
    REPOSITORY = "repository"
    REDIS = "redis"
    TOOL = "tool"
    INTERNAL = "internal"


class ServiceError(Exception):
    """Base exception for service errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        self.message = message
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)


class CompletionError(ServiceError):
    """The completion API could not produce a result after all attempts."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.LLM_SERVICE,
                 details: Optional[Dict[str, Any]] = None, recoverable: bool = True):
        super().__init__(message, category, details, recoverable)


class RepositoryError(ServiceError):
    """A care repository operation failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.REPOSITORY, details, recoverable=True)


class ToolExecutionError(ServiceError):
    """A tool call could not be executed for the conversing user."""

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        super().__init__(message, ErrorCategory.TOOL, details, recoverable=True)


class CompanionErrorHandler:
    """Centralized error classification for the assistant."""

    @staticmethod
    def handle_llm_error(error: BaseException) -> ServiceError:
        """
        Classify a completion API failure.

        Args:
            error: The original exception

        Returns:
            ServiceError with the category and retry hint
        """
        if isinstance(error, ServiceError):
            return error
        if isinstance(error, (openai.APITimeoutError, TimeoutException, asyncio.TimeoutError)):
            return ServiceError(
                message="Completion API request timed out",
                category=ErrorCategory.TIMEOUT,
                details={"service": "llm", "error": str(error)},
                recoverable=True
            )
        if isinstance(error, (openai.APIConnectionError, ConnectError)):
            return ServiceError(
                message="Unable to connect to completion API",
                category=ErrorCategory.NETWORK,
                details={"service": "llm", "error": str(error)},
                recoverable=True
            )
        if isinstance(error, openai.RateLimitError):
            return ServiceError(
                message="Completion API rate limit reached",
                category=ErrorCategory.RATE_LIMIT,
                details={"service": "llm", "error": str(error)},
                recoverable=True
            )
        if isinstance(error, openai.APIStatusError):
            status_code = getattr(error, "status_code", None)
            return ServiceError(
                message="Completion API returned an error",
                category=ErrorCategory.LLM_SERVICE,
                details={"service": "llm", "error": str(error), "status_code": status_code},
                recoverable=status_code is None or status_code >= 500
            )
        if isinstance(error, HTTPError):
            return ServiceError(
                message="Completion API HTTP error",
                category=ErrorCategory.NETWORK,
                details={"service": "llm", "error": str(error)},
                recoverable=True
            )
        return ServiceError(
            message=f"Completion API error: {error}",
            category=ErrorCategory.LLM_SERVICE,
            details={"service": "llm", "error": str(error)},
            recoverable=False
        )

    @staticmethod
    def handle_repository_error(error: BaseException) -> ServiceError:
        """Classify a storage failure raised by a repository implementation."""
        if isinstance(error, ServiceError):
            return error
        if isinstance(error, RedisError):
            return ServiceError(
                message=f"Redis error: {error}",
                category=ErrorCategory.REDIS,
                details={"error": str(error)},
                recoverable=True
            )
        return RepositoryError(f"Repository error: {error}", details={"error": str(error)})

    @staticmethod
    def to_http_exception(service_error: ServiceError) -> HTTPException:
        """
        Convert ServiceError to HTTPException for API responses.

        Args:
            service_error: The service error

        Returns:
            HTTPException with appropriate status code
        """
        status_mapping = {
            ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
            ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
            ErrorCategory.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
            ErrorCategory.NETWORK: status.HTTP_503_SERVICE_UNAVAILABLE,
            ErrorCategory.RATE_LIMIT: status.HTTP_503_SERVICE_UNAVAILABLE,
            ErrorCategory.LLM_SERVICE: status.HTTP_502_BAD_GATEWAY,
            ErrorCategory.REPOSITORY: status.HTTP_503_SERVICE_UNAVAILABLE,
            ErrorCategory.REDIS: status.HTTP_503_SERVICE_UNAVAILABLE,
            ErrorCategory.TOOL: status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorCategory.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
        }

        status_code = status_mapping.get(
            service_error.category,
            status.HTTP_500_INTERNAL_SERVER_ERROR
        )

        return HTTPException(
            status_code=status_code,
            detail={
                "message": service_error.message,
                "category": service_error.category.value,
                "recoverable": service_error.recoverable,
                "timestamp": service_error.timestamp.isoformat()
            }
        )


class ErrorRecovery:
    """Error recovery strategies."""

    @staticmethod
    async def with_default(coro_func, default_value, *args, operation: str = "", **kwargs):
        """
        Await a coroutine function, returning a default value on error.

        Args:
            coro_func: Coroutine function to execute
            default_value: Value to return on error
            operation: Name used in the log line

        Returns:
            Function result or default value
        """
        try:
            return await coro_func(*args, **kwargs)
        except Exception as e:
            logger.warning(f"{operation or coro_func.__name__} failed, using default: {e}")
            return default_value
