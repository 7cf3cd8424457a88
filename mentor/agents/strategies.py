"""Decision table mapping provider capabilities to an analysis plan.

Every strategy is the same pipeline with different switches. Selection
order is fixed: server-side tools, then upfront research, then the default
branch (local tools, then structured output, then streaming).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from mentor.llm_client import ToolMode


class StrategyKind(str, Enum):
    DIRECT = "direct"
    STREAMING_EXTRACTION = "streaming"
    AUTONOMOUS_TOOLS = "autonomous"
    UPFRONT_RESEARCH = "upfront"
    PASSTHROUGH_TOOLS = "passthrough"


class ResponseStage(str, Enum):
    STRUCTURED = "structured"
    STREAMING = "streaming"


@dataclass(frozen=True)
class ProviderCapabilities:
    structured_output: bool = False
    server_side_tools: bool = False
    upfront_research: bool = False
    local_tools: bool = True

    @classmethod
    def from_settings(cls, settings: Any) -> "ProviderCapabilities":
        return cls(
            structured_output=settings.llm_structured_output,
            server_side_tools=settings.llm_server_side_tools,
            upfront_research=settings.llm_upfront_research,
            local_tools=settings.llm_local_tools,
        )


@dataclass(frozen=True)
class StrategyPlan:
    kind: StrategyKind
    stage: ResponseStage
    tool_mode: ToolMode = ToolMode.NONE
    local_tools: bool = False
    upfront_research: bool = False
    # prompt_store keys appended to the system prompt
    prompt_additions: tuple[str, ...] = ()

    @property
    def extracts_findings(self) -> bool:
        return self.stage is ResponseStage.STREAMING


def select_strategy(caps: ProviderCapabilities) -> StrategyKind:
    if caps.server_side_tools:
        return StrategyKind.PASSTHROUGH_TOOLS
    if caps.upfront_research:
        return StrategyKind.UPFRONT_RESEARCH
    if caps.local_tools:
        return StrategyKind.AUTONOMOUS_TOOLS
    if caps.structured_output:
        return StrategyKind.DIRECT
    return StrategyKind.STREAMING_EXTRACTION


def plan_for(kind: StrategyKind, caps: ProviderCapabilities) -> StrategyPlan:
    if kind is StrategyKind.DIRECT:
        return StrategyPlan(kind=kind, stage=ResponseStage.STRUCTURED)
    if kind is StrategyKind.STREAMING_EXTRACTION:
        return StrategyPlan(kind=kind, stage=ResponseStage.STREAMING)
    if kind is StrategyKind.AUTONOMOUS_TOOLS:
        # REQUIRED applies to the first turn only; later turns use AUTO.
        return StrategyPlan(
            kind=kind,
            stage=ResponseStage.STREAMING,
            tool_mode=ToolMode.REQUIRED,
            local_tools=True,
            prompt_additions=("analysis.tools_guidance",),
        )
    if kind is StrategyKind.UPFRONT_RESEARCH:
        stage = ResponseStage.STRUCTURED if caps.structured_output else ResponseStage.STREAMING
        return StrategyPlan(kind=kind, stage=stage, upfront_research=True)
    if kind is StrategyKind.PASSTHROUGH_TOOLS:
        return StrategyPlan(
            kind=kind,
            stage=ResponseStage.STREAMING,
            tool_mode=ToolMode.AUTO,
            prompt_additions=("analysis.passthrough_note",),
        )
    raise ValueError(f"Unknown strategy: {kind}")


def resolve_plan(name: str | None, caps: ProviderCapabilities) -> StrategyPlan:
    """``auto`` (or empty) uses the decision table; anything else names a strategy."""
    normalized = (name or "auto").lower().strip()
    if normalized == "auto":
        kind = select_strategy(caps)
    else:
        try:
            kind = StrategyKind(normalized)
        except ValueError:
            choices = ", ".join(["auto"] + [k.value for k in StrategyKind])
            raise ValueError(f"Unsupported ANALYSIS_STRATEGY '{name}'. Choose one of: {choices}") from None
    return plan_for(kind, caps)
