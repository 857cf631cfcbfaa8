"""Research workflows."""

from stagewise.core.research.workflows.base import WorkflowResult
from stagewise.core.research.workflows.deep_research import DeepResearchWorkflow

__all__ = ["DeepResearchWorkflow", "WorkflowResult"]
