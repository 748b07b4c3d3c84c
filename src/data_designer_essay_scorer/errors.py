from __future__ import annotations


class EssayScoringError(Exception):
    """Base class for every error raised by the essay scorer."""


class InvalidInput(EssayScoringError, ValueError):
    """The scoring request cannot be processed (bad answers or max marks)."""


class AnalyzerFailure(EssayScoringError):
    """A single scoring layer raised or produced a non-finite value.

    Never reaches the caller: the scorer logs it and scores the layer 0.
    """

    def __init__(self, layer: str, reason: str) -> None:
        super().__init__(f"layer {layer!r} failed: {reason}")
        self.layer = layer
        self.reason = reason


class ScoringFailure(EssayScoringError):
    """The pipeline could not produce a result. The root cause is chained as ``__cause__``."""
