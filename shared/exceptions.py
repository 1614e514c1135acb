"""
Custom exceptions for the document vault.
Policy rejections are result values, not exceptions; these cover fatal errors only.
"""
from typing import Optional


class VaultError(Exception):
    """Base exception class for document vault errors."""
    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class StoreUnavailableError(VaultError):
    """Raised when the blob store or relational store cannot be reached."""
    pass


class MalformedInputError(VaultError):
    """Raised when a request does not have the expected shape."""
    pass


class DocumentNotFoundError(VaultError):
    """Raised when a document does not exist for the requesting owner."""
    pass
