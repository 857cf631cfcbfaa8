"""Shared result type for research workflows."""

from dataclasses import dataclass, field
from typing import Any, Optional

from stagewise.core.research.models.deep_research import ResearchSession


@dataclass
class WorkflowResult:
    """Result of a workflow execution.

    Attributes:
        success: Whether the workflow completed successfully
        content: Main response content (the final report)
        session: Final session state
        model_used: Model that generated the report
        tokens_used: Total tokens consumed
        input_tokens: Tokens consumed by prompts
        output_tokens: Tokens generated in responses
        duration_ms: Execution duration in milliseconds
        metadata: Additional workflow-specific data
        error: Error message if success is False
    """

    success: bool
    content: str
    session: Optional[ResearchSession] = None
    model_used: Optional[str] = None
    tokens_used: Optional[int] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.metadata is None:
            self.metadata = {}
