"""Research session error classes.

Everything in this module is fatal to a session: the workflow driver catches
``ResearchEngineError``, marks the session failed and emits an ``error``
progress event. Recoverable provider failures live in ``search`` and ``llm``.
"""

from __future__ import annotations

from typing import Optional


class ResearchEngineError(Exception):
    """Base exception for unrecoverable research session failures."""

    def __init__(self, message: str, *, session_id: Optional[str] = None):
        self.session_id = session_id
        super().__init__(message)


class ConfigurationMissingError(ResearchEngineError):
    """Raised when a component needs the research configuration and there is none."""

    def __init__(self, message: str = "Research configuration is missing", **kwargs):
        super().__init__(message, **kwargs)


class ConfigurationInvalidError(ResearchEngineError):
    """Raised when a request's configuration falls outside the supported bounds.

    Attributes:
        errors: Field-level validation messages
    """

    def __init__(self, message: str, *, errors: Optional[list[str]] = None, **kwargs):
        self.errors = errors or []
        super().__init__(message, **kwargs)


class StageIndexInvalidError(ResearchEngineError):
    """Raised when ``current_stage_index`` does not point at an existing stage."""

    def __init__(self, index: int, stage_count: int, **kwargs):
        self.index = index
        self.stage_count = stage_count
        super().__init__(
            f"Stage index {index} is out of range for {stage_count} stage(s)",
            **kwargs,
        )


class TreeUninitializedError(ResearchEngineError):
    """Raised when a stage reaches reasoning without a reasoning tree."""

    def __init__(self, stage_id: int, **kwargs):
        self.stage_id = stage_id
        super().__init__(f"Stage {stage_id} has no reasoning tree", **kwargs)


class NoStageAnalysesError(ResearchEngineError):
    """Raised when the final report is requested but no stage produced an analysis."""

    def __init__(self, message: str = "No stage analyses available for the report", **kwargs):
        super().__init__(message, **kwargs)


class StepLimitExceededError(ResearchEngineError):
    """Raised when a session runs more steps than ``max_steps`` allows."""

    def __init__(self, max_steps: int, **kwargs):
        self.max_steps = max_steps
        super().__init__(f"Research session exceeded {max_steps} steps", **kwargs)


class ResearchCancelledError(ResearchEngineError):
    """Raised at a step boundary once the session's cancellation token is set."""

    def __init__(self, reason: Optional[str] = None, **kwargs):
        self.reason = reason
        message = "Research cancelled"
        if reason:
            message += f": {reason}"
        super().__init__(message, **kwargs)
