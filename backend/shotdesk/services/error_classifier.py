"""
Error Classifier - Classify collaborator errors as retryable or non-retryable
"""

from typing import Dict, Any
import httpx

from shotdesk.services.errors import (
    CollaboratorError,
    ShotdeskError,
    TransientNetworkError,
)


class ErrorClassifier:
    """
    Classify errors for retry logic and user-facing messages
    """

    # Error codes
    ERROR_NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    ERROR_NETWORK_ERROR = "NETWORK_ERROR"
    ERROR_SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    ERROR_RATE_LIMIT = "SERVICE_RATE_LIMIT"
    ERROR_AUTH = "SERVICE_AUTH"
    ERROR_INVALID_PARAM = "SERVICE_INVALID_PARAM"
    ERROR_VALIDATION_FAILED = "VALIDATION_FAILED"
    ERROR_UNKNOWN = "UNKNOWN_ERROR"

    def classify(self, error: Exception) -> Dict[str, Any]:
        """
        Classify error with user-facing message

        Args:
            error: Exception to classify

        Returns:
            Dict with code, message, classification, retryable, suggested_modifications
        """
        if isinstance(error, httpx.TimeoutException):
            return {
                "code": self.ERROR_NETWORK_TIMEOUT,
                "message": "Network timeout while connecting to the service",
                "classification": "retryable",
                "retryable": True,
                "suggested_modifications": [],
            }

        elif isinstance(error, httpx.TransportError):
            return {
                "code": self.ERROR_NETWORK_ERROR,
                "message": "Network error occurred",
                "classification": "retryable",
                "retryable": True,
                "suggested_modifications": [],
            }

        elif isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code

            if status in (401, 403):
                return {
                    "code": self.ERROR_AUTH,
                    "message": "Authentication with the service failed",
                    "classification": "non_retryable",
                    "retryable": False,
                    "suggested_modifications": ["Verify the service credentials"],
                }

            elif status == 429:
                return {
                    "code": self.ERROR_RATE_LIMIT,
                    "message": "Rate limit exceeded for the service",
                    "classification": "retryable",
                    "retryable": True,
                    "suggested_modifications": ["Wait a few minutes and try again"],
                }

            elif 400 <= status < 500:
                # Client error - non-retryable
                return {
                    "code": self.ERROR_INVALID_PARAM,
                    "message": f"Invalid request parameters: {self._detail(error.response)}",
                    "classification": "non_retryable",
                    "retryable": False,
                    "suggested_modifications": ["Check request parameters and try again"],
                }

            elif 500 <= status < 600:
                # Server error - retryable
                return {
                    "code": self.ERROR_SERVICE_UNAVAILABLE,
                    "message": "Service temporarily unavailable",
                    "classification": "retryable",
                    "retryable": True,
                    "suggested_modifications": ["Try again in a few minutes"],
                }

        if isinstance(error, ShotdeskError):
            return {
                "code": error.code,
                "message": error.message,
                "classification": "retryable" if isinstance(error, TransientNetworkError) else "non_retryable",
                "retryable": isinstance(error, TransientNetworkError),
                "suggested_modifications": list(error.suggested_modifications),
            }

        # Validation errors
        if "ValidationError" in type(error).__name__ or isinstance(error, ValueError):
            return {
                "code": self.ERROR_VALIDATION_FAILED,
                "message": str(error),
                "classification": "non_retryable",
                "retryable": False,
                "suggested_modifications": [],
            }

        # Default - unknown error
        return {
            "code": self.ERROR_UNKNOWN,
            "message": f"An unexpected error occurred: {str(error)}",
            "classification": "non_retryable",
            "retryable": False,
            "suggested_modifications": ["Please try again or contact support"],
        }

    def to_exception(self, error: Exception) -> ShotdeskError:
        """
        Convert an httpx error into the service's error taxonomy

        Args:
            error: Raised exception

        Returns:
            TransientNetworkError for retryable failures, CollaboratorError otherwise
        """
        if isinstance(error, ShotdeskError):
            return error

        classification = self.classify(error)
        if classification["retryable"]:
            return TransientNetworkError(
                classification["message"],
                suggested_modifications=classification["suggested_modifications"],
            )

        status_code = None
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
        return CollaboratorError(
            classification["message"],
            status_code=status_code,
            suggested_modifications=classification["suggested_modifications"],
        )

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        """Pull a FastAPI-style ``detail`` out of an error response"""
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict) and body.get("detail"):
            return str(body["detail"])
        return response.text
