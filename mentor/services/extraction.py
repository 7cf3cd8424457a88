"""Locate the JSON payload in free-form model output and parse it.

Extractors are tried in order; the first that finds a non-empty marked
span wins, even when the span holds only whitespace. The identity fallback
always matches, so callers can tell from the reported method whether any
marker was actually found.
"""
from __future__ import annotations

import re
from typing import Callable, Optional

from loguru import logger
from pydantic import ValidationError

from mentor.errors import DeserializationError, preview
from mentor.models.analysis import ResearchResult
from mentor.models.recommendation import (
    LLMResponse,
    Recommendation,
    degraded_recommendation,
    from_llm_response,
)

FINDINGS_START = re.compile(re.escape("<findings>"), re.IGNORECASE)
FINDINGS_END = re.compile(re.escape("</findings>"), re.IGNORECASE)
JSON_FENCE = re.compile(re.escape("```json"), re.IGNORECASE)
FENCE = "```"

METHOD_FINDINGS = "findings"
METHOD_JSON_FENCE = "json_fence"
METHOD_RAW = "raw"


def extract_findings_block(text: str) -> Optional[str]:
    """Content between the first ``<findings>`` and the first ``</findings>``, untrimmed."""
    start = FINDINGS_START.search(text)
    end = FINDINGS_END.search(text)
    if start is None or end is None or end.start() <= start.end():
        return None
    return text[start.end():end.start()]


def extract_json_fence(text: str) -> Optional[str]:
    opening = JSON_FENCE.search(text)
    if opening is None:
        return None
    start = opening.end()
    # Skip a single newline right after the opening fence.
    if text.startswith("\r\n", start):
        start += 2
    elif text.startswith("\n", start):
        start += 1
    end = text.find(FENCE, start)
    if end <= start:
        return None
    return text[start:end].strip()


Extractor = Callable[[str], Optional[str]]

EXTRACTORS: tuple[tuple[str, Extractor], ...] = (
    (METHOD_FINDINGS, extract_findings_block),
    (METHOD_JSON_FENCE, extract_json_fence),
)


def extract_json_text(text: str) -> tuple[str, str]:
    """Return ``(payload, method)``. Falls back to the whole input as ``raw``."""
    for method, extractor in EXTRACTORS:
        found = extractor(text)
        if found is not None:
            return found, method
    return text, METHOD_RAW


def parse_recommendation_text(
    text: str,
    provider_name: str,
    search_results: list[ResearchResult] | None = None,
) -> Recommendation:
    """Extract and deserialize a recommendation from accumulated model output.

    Empty output yields the zero-confidence degraded result. Output that is
    present but does not parse raises ``DeserializationError``.
    """
    payload, method = extract_json_text(text or "")
    if not payload.strip():
        logger.warning("LLM returned no usable output; producing degraded recommendation")
        return degraded_recommendation(provider_name)

    try:
        response = LLMResponse.model_validate_json(payload)
    except ValidationError as exc:
        if method == METHOD_RAW:
            logger.error(
                "No <findings> block or ```json fence in LLM output; raw text did not parse. "
                f"Response text: {preview(payload)}"
            )
        else:
            logger.error(f"Failed to parse LLM response ({method}) as JSON. Response text: {preview(payload)}")
        raise DeserializationError(
            f"Could not deserialize recommendation from {method} output: {exc}",
            text=payload,
            extraction_method=method,
        ) from exc

    logger.debug(f"Parsed recommendation using {method} extraction")
    return from_llm_response(response, provider_name, search_results=search_results)
