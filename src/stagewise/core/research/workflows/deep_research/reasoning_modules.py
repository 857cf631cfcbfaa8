"""Reasoning module catalogue and self-discover prompting.

Self-discover runs before stage planning: the model picks the reasoning
modules that suit the topic, then rewrites them as topic-specific questions.
The questions are folded into the planning prompt as guidance.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

REASONING_MODULES: tuple[str, ...] = (
    # Critical analysis
    "How could an experiment be designed to test claims about this topic?",
    "What key assumptions underlie this topic?",
    "What are the risks and drawbacks of each approach to this topic?",
    "What alternative perspectives exist on this topic?",
    "What are the long-term implications of this topic?",
    "How can this topic be broken into smaller, more manageable parts?",
    # Creative thinking
    "What unconventional approaches might apply to this topic?",
    "How would this topic look from a completely different discipline?",
    "What if the conventional understanding of this topic is wrong?",
    # Systems thinking
    "What underlying systems and feedback loops relate to this topic?",
    "How do the different elements of this topic interact?",
    "What emergent properties arise from those interactions?",
    # Risk analysis
    "What uncertainties exist in the current understanding of this topic?",
    "What unintended consequences could different approaches have?",
    "How might new information change the understanding of this topic?",
    # Problem framing
    "What is the core problem within this topic that needs addressing?",
    "What causes or factors contribute to this topic?",
    "Which earlier approaches have been tried, and what were their outcomes?",
    # Stakeholders
    "Who are the key stakeholders affected by this topic?",
    "What are the stakeholders' perspectives, needs and concerns?",
    "How might different stakeholders define success?",
    # Resources
    "What financial, human or technological resources does progress on this topic need?",
    "What constraints or limitations must be considered?",
    # Measurement
    "How can progress in understanding this topic be measured?",
    "Which indicators or metrics are most appropriate?",
    # Classification
    "Is this topic primarily technical, practical, conceptual or theoretical?",
    "Does this topic involve physical constraints, human behavior or decisions under uncertainty?",
    "Is this topic an analytical challenge, a design challenge or a systems challenge?",
    # Solution approach
    "What kinds of solutions are typically produced for this kind of topic?",
    "If current approaches are incorrect, how else could this topic be approached?",
    "How could current approaches be modified given what is known?",
    # Method
    "What systematic approach would explore this topic most effectively?",
    "How should an investigation of this topic be organized?",
)


class ModuleSelection(BaseModel):
    """Indices into ``REASONING_MODULES`` chosen for a topic."""

    selected_indices: list[int] = Field(..., description="0-based indices of the chosen reasoning modules")


class AdaptedQuestions(BaseModel):
    """Selected modules rewritten for a specific topic."""

    adapted_questions: list[str] = Field(..., description="One topic-specific question per selected module")


def selection_count(stage_count: int, queries_per_stage: int) -> int:
    """Number of modules to select, capped by the catalogue size."""
    return min(stage_count * queries_per_stage, len(REASONING_MODULES))


def build_selection_prompt(topic: str, count: int) -> str:
    catalogue = "\n".join(f"{i}: {module}" for i, module in enumerate(REASONING_MODULES))
    return (
        "You are a research expert choosing reasoning approaches for exploring a topic.\n\n"
        f"TOPIC: {topic}\n\n"
        f"Reasoning approaches (numbered from 0):\n{catalogue}\n\n"
        f"Select exactly {count} approaches. Prefer approaches that are diverse, "
        "relevant to this particular topic and likely to give the most insight.\n"
        f"Return their indices (0 to {len(REASONING_MODULES) - 1})."
    )


def build_adaptation_prompt(topic: str, modules: list[str]) -> str:
    numbered = "\n".join(f"{i + 1}. {module}" for i, module in enumerate(modules))
    return (
        "You are a research expert adapting general reasoning questions to a topic.\n\n"
        f"TOPIC: {topic}\n\n"
        f"Selected questions:\n{numbered}\n\n"
        f'Rewrite each question so it addresses "{topic}" specifically and concretely. '
        "Keep the thinking approach of each question; change its language and focus. "
        "Return the questions in the same order."
    )


def resolve_selection(selection: ModuleSelection, count: int) -> list[str]:
    """Map selected indices onto modules, dropping invalid and repeated indices."""
    seen: set[int] = set()
    modules: list[str] = []
    for index in selection.selected_indices:
        if 0 <= index < len(REASONING_MODULES) and index not in seen:
            seen.add(index)
            modules.append(REASONING_MODULES[index])
        if len(modules) >= count:
            break
    return modules
