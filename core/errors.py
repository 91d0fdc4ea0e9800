"""
Error taxonomy for the scoring pipeline.

Validation errors are raised before orchestration and surface to the caller.
Provider errors never leave the orchestrator: transient ones are retried,
everything else advances the fallback chain.
"""


class ScoringError(Exception):
    """Base class for every error raised by the scoring services."""


# ── Request validation ───────────────────────────────────────────────────────

class ScoreValidationError(ScoringError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ImageTooLargeError(ScoreValidationError):
    status_code = 413


# ── Embedding provider ───────────────────────────────────────────────────────

class ProviderError(ScoringError):
    pass


class ProviderTransientError(ProviderError):
    """Network failure, timeout, quota (429) or 5xx. Safe to retry."""


class ProviderPermanentError(ProviderError):
    """Malformed input or unsupported content. Retrying will not help."""


class ProviderParseError(ProviderPermanentError):
    """The provider answered but the payload held no usable vector."""


# ── Internal invariants ──────────────────────────────────────────────────────

class InternalInvariantError(ScoringError):
    pass


class CacheCorruptionError(InternalInvariantError):
    pass


def truncate_detail(error: BaseException | str, limit: int = 200) -> str:
    text = str(error) or type(error).__name__
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)] + "…"
