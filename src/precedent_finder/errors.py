"""Error taxonomy for the retrieval and verification pipeline.

Only ProviderError and ConfigurationError are raised across module boundaries.
Blocking is reported as a value (BlockedSignal) and surfaces as a stop reason;
contradiction is a scoring field, never an exception.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from precedent_finder.pipeline.types import AttemptDebug


class PipelineError(Exception):
    """Base class for pipeline errors."""


class ProviderError(PipelineError):
    """Retrieval failure that still carries partial attempt debug metadata."""

    def __init__(self, message: str, debug: "AttemptDebug"):
        super().__init__(message)
        self.debug = debug


class ConfigurationError(PipelineError):
    """An optional collaborator is not configured; the capability is disabled."""


class PlanValidationError(PipelineError):
    """A reasoner plan could not be used at all (strict validation only)."""


@dataclass(frozen=True)
class BlockedSignal:
    kind: str  # local_cooldown | cloudflare_challenge | rate_limit
    retry_after_ms: Optional[int] = None

    @classmethod
    def from_debug(cls, debug: "AttemptDebug") -> Optional["BlockedSignal"]:
        if debug.blocked_type == "local_cooldown":
            return cls("local_cooldown", debug.retry_after_ms)
        if debug.challenge_detected or debug.status == 429:
            kind = debug.blocked_type or ("cloudflare_challenge" if debug.challenge_detected else "rate_limit")
            return cls(kind, debug.retry_after_ms)
        return None


__all__ = ['PipelineError', 'ProviderError', 'ConfigurationError', 'PlanValidationError', 'BlockedSignal']
