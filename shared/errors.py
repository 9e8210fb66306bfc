"""
Error taxonomy for context assembly.

Background build errors are captured into the build record and never
escape to callers of get_context. ConfigurationError is the only one
raised straight back to the caller.
"""

from typing import Optional


class ContextError(Exception):
    """Base class for context assembly errors."""

    pass


class NoDocumentsError(ContextError):
    """No active documents for the key. Terminal, never retried."""

    def __init__(self, project: str, document_type: str):
        self.project = project
        self.document_type = document_type
        super().__init__("No documents found")


class ExtractionError(ContextError):
    """Text extraction failed for a single document."""

    def __init__(self, message: str, document_id: Optional[str] = None):
        self.document_id = document_id
        super().__init__(message)


class TransientBuildError(ContextError):
    """A build failure that may succeed on retry."""

    pass


class ConfigurationError(ContextError):
    """Invalid or unknown context configuration (e.g. model category)."""

    pass
