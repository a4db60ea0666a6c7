"""
LLM-backed analysis of synced items.

analyze_item() produces summary/category/scope; match_criteria() ranks
performance criteria against the result. Model output is normalized so a
sloppy reply degrades to sane defaults instead of failing the item.
"""

import logging
from typing import Any

from evidence_engine.core.llm.base import BaseLLM
from evidence_engine.core.models.sync import Criterion
from evidence_engine.core.sync.types import (
    CATEGORIES,
    MAX_CRITERIA_MATCHES,
    SCOPES,
    CriterionScore,
    ItemAnalysis,
    RemoteItem,
)

logger = logging.getLogger(__name__)

BODY_PROMPT_CHARS = 1500
MAX_PROMPT_FILES = 10

ANALYSIS_SYSTEM_PROMPT = (
    "You summarize software engineering work for a performance review. "
    "Be factual and concise."
)

ANALYSIS_SCHEMA = {
    "summary": "1-2 sentence summary of the work done",
    "category": "|".join(CATEGORIES),
    "scope": "|".join(SCOPES),
}

MATCH_SCHEMA = {
    "matches": [
        {"criterionId": "integer id from the list", "confidence": "0.0-1.0", "rationale": "short reason"}
    ]
}


def estimate_scope(item: RemoteItem) -> str:
    """Heuristic scope used when the model gives none: lines changed or story points."""
    if item.key.source == "github":
        if item.lines_changed < 50:
            return "small"
        if item.lines_changed <= 200:
            return "medium"
        return "large"

    if item.story_points is not None:
        if item.story_points <= 1:
            return "small"
        if item.story_points <= 3:
            return "medium"
        return "large"
    return "small"


def describe_item(item: RemoteItem) -> str:
    """Render the parts of an item worth showing the model."""
    lines = [f"Item: {item.key}", f"Title: {item.title}"]
    if item.key.source == "github":
        lines.append(f"Lines changed: +{item.additions} -{item.deletions} in {item.changed_files} files")
        if item.files:
            lines.append("Files: " + ", ".join(item.files[:MAX_PROMPT_FILES]))
        lines.append(f"Role: {item.key.role}")
    else:
        lines.append(f"Type: {item.issue_type or 'unknown'}, status: {item.state or 'unknown'}")
        if item.story_points is not None:
            lines.append(f"Story points: {item.story_points:g}")
    if item.body:
        lines.append(f"Description:\n{item.body[:BODY_PROMPT_CHARS]}")
    return "\n".join(lines)


def _normalize_analysis(data: Any, item: RemoteItem) -> ItemAnalysis:
    if not isinstance(data, dict):
        data = {}

    summary = str(data.get("summary") or "").strip() or item.title
    category = str(data.get("category") or "").strip().lower()
    scope = str(data.get("scope") or "").strip().lower()

    return ItemAnalysis(
        summary=summary,
        category=category if category in CATEGORIES else "other",
        scope=scope if scope in SCOPES else estimate_scope(item),
    )


async def analyze_item(llm: BaseLLM, item: RemoteItem) -> ItemAnalysis:
    """
    Summarize and classify one item.

    Raises:
        UpstreamFailure: If the model call fails.
    """
    if item.key.source == "github":
        scope_hint = "small (< 50 lines), medium (50-200 lines), large (> 200 lines)"
    else:
        scope_hint = "small (< 1 day), medium (1-3 days), large (> 3 days)"

    prompt = (
        f"{describe_item(item)}\n\n"
        "Provide:\n"
        "1. summary: 1-2 sentences on the work accomplished\n"
        f"2. category: one of {', '.join(CATEGORIES)}\n"
        f"3. scope: {scope_hint}"
    )

    data = await llm.complete_json(prompt, schema=ANALYSIS_SCHEMA, system=ANALYSIS_SYSTEM_PROMPT)
    return _normalize_analysis(data, item)


def _normalize_matches(data: Any, valid_ids: set[int]) -> list[CriterionScore]:
    raw = data.get("matches", []) if isinstance(data, dict) else data
    if not isinstance(raw, list):
        return []

    best: dict[int, CriterionScore] = {}
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            criterion_id = int(entry.get("criterionId", entry.get("criterion_id")))
            confidence = float(entry.get("confidence", 0.8))
        except (TypeError, ValueError):
            continue
        if criterion_id not in valid_ids:
            continue

        confidence = max(0.0, min(1.0, confidence))
        score = CriterionScore(
            criterion_id=criterion_id,
            confidence=confidence,
            rationale=str(entry.get("rationale") or "").strip(),
        )
        if criterion_id not in best or best[criterion_id].confidence < confidence:
            best[criterion_id] = score

    ranked = sorted(best.values(), key=lambda s: s.confidence, reverse=True)
    return ranked[:MAX_CRITERIA_MATCHES]


async def match_criteria(
    llm: BaseLLM,
    item: RemoteItem,
    analysis: ItemAnalysis,
    criteria: list[Criterion],
) -> list[CriterionScore]:
    """
    Rank up to three criteria that this item is evidence for.

    Returns an empty list without calling the model when there are no criteria.

    Raises:
        UpstreamFailure: If the model call fails.
    """
    if not criteria:
        return []

    criteria_ref = "\n".join(
        f"[{c.id}] {c.area} > {c.subarea}: {c.description[:100]}" for c in criteria
    )
    prompt = (
        f"Work item {item.key}: {item.title}\n"
        f"Summary: {analysis.summary}\n"
        f"Category: {analysis.category}, scope: {analysis.scope}\n\n"
        f"{item.body[:BODY_PROMPT_CHARS]}\n\n"
        f"PERFORMANCE CRITERIA:\n{criteria_ref}\n\n"
        f"Pick up to {MAX_CRITERIA_MATCHES} criteria this work is evidence for, "
        "most relevant first. Return an empty list if none fit."
    )

    data = await llm.complete_json(prompt, schema=MATCH_SCHEMA, system=ANALYSIS_SYSTEM_PROMPT)
    matches = _normalize_matches(data, {c.id for c in criteria})
    logger.debug(f"{item.key}: matched criteria {[m.criterion_id for m in matches]}")
    return matches
