"""Failure taxonomy for file registry operations.

Every error is a per-request outcome. ``status_code`` and ``code`` drive the
HTTP rendering in ``crm_files.errors``.
"""

from __future__ import annotations


class FileRegistryError(Exception):
    """Base class for file registry failures."""

    status_code = 500
    code = "file_registry_error"

    def __init__(self, message: str, *, retryable: bool = False, details: object = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.details = details


class ValidationError(FileRegistryError):
    """Malformed or out-of-range input."""

    status_code = 400
    code = "validation_error"


class NotFoundError(FileRegistryError):
    """Absent, soft-deleted, or owned by another tenant."""

    status_code = 404
    code = "not_found"


class PermissionDeniedError(FileRegistryError, PermissionError):
    """Authenticated but not allowed to perform this mutation."""

    status_code = 403
    code = "permission_denied"


class ConflictError(FileRegistryError):
    """Uniqueness violation: duplicate link or version-number race."""

    status_code = 409
    code = "conflict"


class StorageError(FileRegistryError):
    """The object storage collaborator failed or timed out."""

    status_code = 500
    code = "storage_error"


class UploadPendingError(StorageError):
    """The file row has a locator but no object has landed behind it yet."""

    status_code = 409
    code = "upload_pending"

    def __init__(self, message: str = "File upload has not completed", **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
