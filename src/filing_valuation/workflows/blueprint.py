"""Workflow blueprint describing stages and their handlers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Set, TYPE_CHECKING

from filing_valuation.workflows.nodes import facts_load, quote_load, reconstruct, summarize, valuation

if TYPE_CHECKING:
    from filing_valuation.workflows.context import WorkflowContext
    from filing_valuation.workflows.state import ValuationState


@dataclass
class StageSpec:
    """Single LangGraph stage definition."""

    key: str
    description: str
    handler: Callable[["ValuationState", "WorkflowContext"], "ValuationState"]
    depends_on: List[str] = field(default_factory=list)


def build_default_stages() -> List[StageSpec]:
    """Return the ordered stages for the valuation workflow."""
    return [
        StageSpec(
            key="load_facts",
            description="Read the company's reported facts from the local fact store.",
            handler=facts_load.run,
        ),
        StageSpec(
            key="load_quote",
            description="Use the supplied quote or look it up in the quotes file.",
            handler=quote_load.run,
        ),
        StageSpec(
            key="reconstruct_statements",
            description="Build, reconcile and quarterize statements; derive Q4 and TTM.",
            handler=reconstruct.run,
            depends_on=["load_facts"],
        ),
        StageSpec(
            key="summarize_financials",
            description="Distill TTM/annual figures, ratios and growth rates (pandas-based).",
            handler=summarize.run,
            depends_on=["reconstruct_statements", "load_quote"],
        ),
        StageSpec(
            key="valuation",
            description="Run nine valuation methods and the confidence-weighted aggregate.",
            handler=valuation.run,
            depends_on=["summarize_financials"],
        ),
    ]


def check_stage_order(stages: List[StageSpec]) -> None:
    """Raise ``ValueError`` unless every dependency runs before the stage needing it."""
    seen: Set[str] = set()
    for stage in stages:
        if stage.key in seen:
            raise ValueError(f"Duplicate workflow stage: {stage.key}")
        pending = [dep for dep in stage.depends_on if dep not in seen]
        if pending:
            raise ValueError(f"Stage {stage.key} runs before its dependencies: {', '.join(pending)}")
        seen.add(stage.key)
