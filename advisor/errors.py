"""Exception hierarchy shared across the advisory core.

Errors fall into three groups:

- validation: malformed caller input, rejected immediately;
- configuration: missing credentials or endpoints, fatal for the component;
- upstream: model, vector index or counter store failures. Most of these are
  absorbed by a degraded path; ``GenerationError`` marks the one that is not.
"""

from typing import Any


class AdvisorError(Exception):
    """Base class for application errors."""

    public_code = "INTERNAL_ERROR"

    def __init__(self, message: str, **meta: Any) -> None:  # noqa: ANN401
        """Store the message and any structured context for logging."""
        super().__init__(message)
        self.meta = meta

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for a client-facing payload.

        Returns:
            Mapping with the public code and message.
        """
        return {"code": self.public_code, "message": str(self)}


class ValidationError(AdvisorError, ValueError):
    """Caller supplied malformed or out-of-range input."""

    public_code = "VALIDATION_FAILED"


class ConfigurationError(AdvisorError, ValueError):
    """A required setting or external endpoint is missing."""

    public_code = "CONFIGURATION_ERROR"


class UpstreamError(AdvisorError, RuntimeError):
    """A transient failure in an external provider."""

    public_code = "EXTERNAL_SERVICE_ERROR"


class RetrievalError(UpstreamError):
    """Knowledge-base retrieval could not be completed."""


class GenerationError(AdvisorError, RuntimeError):
    """The chat-completion call that produces the answer failed."""

    public_code = "GENERATION_FAILED"
