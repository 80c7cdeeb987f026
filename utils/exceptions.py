"""
Custom Exceptions
News radar error hierarchy
"""


class NewsRadarError(Exception):
    """Base error for the ingestion core"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(NewsRadarError):
    """Invalid or missing configuration"""
    pass


class FetchError(NewsRadarError):
    """Content fetcher failure"""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class StorageError(NewsRadarError):
    """Persistence failure"""
    pass


class VectorStoreError(StorageError):
    """Vector index failure"""
    pass


class ProcessingError(NewsRadarError):
    """Text processing failure"""
    pass


class ChunkingError(ProcessingError):
    """Text chunking failure"""
    pass


class EmbeddingError(NewsRadarError):
    """Embedding call failure"""

    def __init__(self, message: str, model: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.model = model


class LLMError(NewsRadarError):
    """Completion call failure"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class EvaluationParseError(NewsRadarError):
    """Completion response could not be parsed into an evaluation"""

    def __init__(self, message: str, raw: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.raw = raw
