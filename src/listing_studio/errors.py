from __future__ import annotations


class StudioError(Exception):
    """Base class for every failure raised by the studio core."""


class MalformedResponse(StudioError):
    """No JSON object or array could be recovered from a model response."""

    EXCERPT_LIMIT = 500

    def __init__(self, message: str, raw_text: str | None = None) -> None:
        super().__init__(message)
        raw = raw_text or ""
        self.raw_excerpt = raw[: self.EXCERPT_LIMIT]
        self.raw_length = len(raw)


class AnalysisError(StudioError):
    pass


class ResearchFailed(AnalysisError):
    pass


class StructuringFailed(AnalysisError):
    pass


class PlanningFailed(StudioError):
    pass


class GenerationFailed(StudioError):
    pass


class EditFailed(StudioError):
    pass


class StorageQuotaExceeded(StudioError):
    pass


class RehydrationFailed(StudioError):
    pass


class InvalidTransition(StudioError):
    """An operation was requested in a state that does not allow it."""
