"""
Error handling for the Print Customizer.

Provides specific exception types for the customization pipeline
(ingestion, rendering, step transitions, submission) with enough
context for user-facing messages.
"""

from typing import Dict, List, Any


class CustomizerError(Exception):
    """Base exception for all customizer errors."""

    def __init__(self, message: str, details: Dict[str, Any] = None, suggestions: List[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'suggestions': self.suggestions
        }


class ValidationError(CustomizerError):
    """Raised when user input validation fails."""
    pass


class ProcessingError(CustomizerError):
    """Raised when the image pipeline fails."""
    pass


class DecodeError(ProcessingError):
    """Raised when an image cannot be decoded."""
    pass


class RenderError(ProcessingError):
    """Raised when canvas rendering fails."""
    pass


class StaleResultError(ProcessingError):
    """Raised when an in-flight decode was superseded by a newer request."""

    def __init__(self, token: int, latest: int):
        super().__init__(
            f"Discarded stale decode result (token {token}, latest {latest})",
            details={'token': token, 'latest': latest}
        )


class SubmissionError(CustomizerError):
    """Raised when the order collaborator rejects a request."""
    pass


class StepTransitionError(ValidationError):
    """Raised when a wizard step transition is not allowed."""

    def __init__(self, message: str, current_step: str, target_step: str):
        super().__init__(
            message,
            details={
                'current_step': current_step,
                'target_step': target_step
            }
        )


class MissingImageError(ValidationError):
    """Raised when an order is submitted without the required photo(s)."""

    def __init__(self, template_id: str):
        if template_id == 'collage':
            message = "Please upload at least one photo for collage"
        else:
            message = "Please upload a photo first"
        super().__init__(message, details={'template': template_id})


class MissingCustomTextError(ValidationError):
    """Raised when a text-customization product has no text."""

    def __init__(self, field_name: str = 'custom_text'):
        super().__init__(
            "Please enter the text to print",
            details={'field': field_name}
        )


class InvalidImageFormatError(ValidationError):
    """Raised when uploaded file is not an image."""

    def __init__(self, filename: str, detected_type: str = None):
        super().__init__(
            "Please upload an image file",
            details={
                'filename': filename,
                'detected_type': detected_type
            },
            suggestions=[
                "Use JPG, PNG or WEBP format images",
                "Convert the file to a supported format"
            ]
        )


class FileTooLargeError(ValidationError):
    """Raised when uploaded file exceeds size limit."""

    def __init__(self, filename: str, size_mb: float, limit_mb: float):
        super().__init__(
            f"Image size should be less than {limit_mb:g}MB",
            details={
                'filename': filename,
                'size_mb': size_mb,
                'limit_mb': limit_mb
            },
            suggestions=[
                f"Reduce file size to under {limit_mb:g}MB",
                "Compress the image using image editing software"
            ]
        )


class SessionNotFoundError(CustomizerError):
    """Raised when a request names a customization session that is not open."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Session {session_id} not found",
            details={'session_id': session_id},
            suggestions=["Reopen the product's customization page"]
        )
