"""
Error kinds raised by the ingestion and chat pipelines.
"""


class PdfChatError(Exception):
    """Base class for all domain errors."""


class ConfigurationError(PdfChatError):
    """Raised when required configuration is missing or invalid."""


class DownloadError(PdfChatError):
    """The blob store could not return the file bytes."""


class ExtractionError(PdfChatError):
    """The parse job failed, timed out, or returned no usable text."""


class EmbeddingProviderError(PdfChatError):
    """An embedding batch call failed."""


class RetrievalError(PdfChatError):
    """The similarity search call failed."""


class PersistenceError(PdfChatError):
    """A row insert or update failed."""


class GenerationProviderError(PdfChatError):
    """The answer generation call failed."""


class DuplicateDocumentError(PdfChatError):
    """The same bucket/path is already being ingested or was ingested."""


class DocumentNotFoundError(PdfChatError):
    pass


class SessionNotFoundError(PdfChatError):
    pass


class InvalidStatusTransition(PdfChatError):
    """A document status change was requested out of a terminal state."""


class MessageOrderError(PdfChatError):
    """An assistant message was appended without a pending user message."""
