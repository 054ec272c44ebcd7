"""
Exceptions for the Visual Build Core.
"""

from typing import Optional, Any, Dict


class BuildCoreError(Exception):
    """Base exception for all build-layer errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(BuildCoreError):
    """Raised when a node or reference id does not resolve."""

    def __init__(self, message: str, resource_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.resource_id = resource_id


class MalformedInputError(BuildCoreError):
    """Raised when a required argument is empty or has the wrong type."""
    pass


class ReferenceImportError(MalformedInputError):
    """Raised when a serialized reference document cannot be parsed at all."""
    pass


class ImportValidationError(BuildCoreError):
    """Describes a single reference record skipped during bulk import."""

    def __init__(self, message: str, record_index: int, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.record_index = record_index
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            'record_index': self.record_index,
            'reason': self.reason,
            'message': str(self),
            'details': self.details,
        }
