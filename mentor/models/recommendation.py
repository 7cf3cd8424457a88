from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mentor.models.analysis import ResearchResult


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def parse_priority(value: str | None) -> Priority:
    """Case-insensitive priority lookup; anything unrecognized is Medium."""
    normalized = (value or "").strip().lower()
    try:
        return Priority(normalized)
    except ValueError:
        return Priority.MEDIUM


# --- Model-facing wire shape ---


class LLMRecommendation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    priority: str | None = Field(
        default=None,
        description="Priority level for this recommendation. Must be exactly one of: 'high', 'medium', or 'low'.",
    )
    action: str | None = Field(
        default=None,
        description="Specific actionable step the user should take. Should be clear and concrete.",
    )
    reasoning: str | None = Field(
        default=None,
        description="Why this recommendation is relevant and important. Should justify the priority level.",
    )
    context: str | None = Field(
        default=None,
        description="Details observed in the screenshot or research that support this recommendation.",
    )
    reference_link: str | None = Field(
        default=None,
        alias="referenceLink",
        description="URL from web search results that supports this recommendation, or an empty string.",
    )


class LLMResponse(BaseModel):
    analysis: str | None = Field(
        default=None,
        description="Detailed analysis of the screenshot, based on visual observation and any research.",
    )
    summary: str | None = Field(
        default=None,
        description="Brief summary of the key findings.",
    )
    confidence: float = Field(
        default=0.0,
        description="How certain the analysis is, from 0.0 (low) to 1.0 (high).",
    )
    recommendations: list[LLMRecommendation] | None = Field(
        default=None,
        description="Actionable recommendations, each specific and practical.",
    )


def response_json_schema() -> dict[str, Any]:
    return LLMResponse.model_json_schema(by_alias=True)


# --- Engine result ---


@dataclass
class RecommendationItem:
    priority: Priority
    action: str
    reasoning: str
    context: str
    reference_link: str = ""

    @property
    def has_reference_link(self) -> bool:
        return self.reference_link.strip().lower().startswith("https")

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "action": self.action,
            "reasoning": self.reasoning,
            "context": self.context,
            "referenceLink": self.reference_link,
        }


@dataclass
class Recommendation:
    analysis: str
    summary: str
    confidence: float
    provider_used: str
    recommendations: list[RecommendationItem] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    search_results: list[ResearchResult] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "analysis": self.analysis,
            "summary": self.summary,
            "confidence": self.confidence,
            "recommendations": [item.to_dict() for item in self.recommendations],
            "generatedAt": self.generated_at.isoformat(),
            "providerUsed": self.provider_used,
        }
        if self.search_results is not None:
            data["searchResults"] = [r.to_dict() for r in self.search_results]
        return data


def from_llm_response(
    response: LLMResponse,
    provider_name: str,
    search_results: list[ResearchResult] | None = None,
) -> Recommendation:
    items = [
        RecommendationItem(
            priority=parse_priority(r.priority),
            action=r.action or "",
            reasoning=r.reasoning or "",
            context=r.context or "",
            reference_link=r.reference_link or "",
        )
        for r in response.recommendations or []
    ]
    return Recommendation(
        analysis=response.analysis or "No analysis provided",
        summary=response.summary or "No summary provided",
        confidence=min(max(float(response.confidence), 0.0), 1.0),
        provider_used=provider_name,
        recommendations=items,
        search_results=search_results,
    )


def degraded_recommendation(provider_name: str) -> Recommendation:
    """Zero-confidence result for a model that produced no output at all."""
    return Recommendation(
        analysis="No analysis provided",
        summary="Nothing found in response from LLM server. Please check its logs.",
        confidence=0.0,
        provider_used=provider_name,
        recommendations=[],
    )
