"""Exceptions raised inside the AI engine.

None of these escape the public engine operations: the lifecycle,
provider and orchestrator convert them into fallback behaviour.
"""


class EngineError(Exception):
    """Base class for AI engine errors."""


class WorkerUnavailableError(EngineError):
    """Raised when the embedding worker process cannot be started."""


class DispatchError(EngineError):
    """Raised when a request to the embedding worker does not succeed."""


class DispatchTimeoutError(DispatchError):
    """Raised when the worker does not reply within the request timeout."""


class WorkerReplyError(DispatchError):
    """Raised when the worker replies with an error message."""


class ChannelClosedError(DispatchError):
    """Raised for requests still pending when the channel is closed."""


class DispatchCancelledError(DispatchError):
    """Raised to the caller of a request that was cancelled while pending."""


class EmbeddingError(EngineError):
    """Raised when an embedding backend call fails."""
