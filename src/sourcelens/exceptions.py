"""Error taxonomy shared by the SourceLens services and surfaces."""


class SourceLensError(Exception):
    """Base class for all SourceLens errors."""


class ConfigurationError(SourceLensError):
    """A required configuration value is missing or invalid."""


class ValidationError(SourceLensError):
    """A request is malformed or exceeds a documented limit."""


class EmbeddingError(SourceLensError):
    """The embedding provider failed or returned vectors of the wrong shape."""


class StorageError(SourceLensError):
    """A vector store or blob store operation failed."""


class NotInitializedError(SourceLensError):
    """A service was used before its initialize() step completed."""


class ModelCallError(SourceLensError):
    """A language-model completion call failed mid-stream."""
