"""Error taxonomy for the answering pipeline."""


class HidayahError(Exception):
    """Base class for pipeline failures that reach the API boundary."""


class ConfigurationError(HidayahError):
    """Missing credentials or a client that could not be constructed."""


class EmbeddingError(ConfigurationError):
    """Embedding call failed or returned a vector of the wrong size."""


class StorageError(HidayahError):
    """Row store or vector-search RPC failure."""


class GenerationError(HidayahError):
    """Completion call failed."""
