"""Tests for item analysis and criteria matching."""

import pytest

from evidence_engine.core.models.sync import Criterion
from evidence_engine.core.sync.analysis import (
    _normalize_analysis,
    _normalize_matches,
    analyze_item,
    describe_item,
    estimate_scope,
    match_criteria,
)
from evidence_engine.core.sync.types import ItemAnalysis, NaturalKey, RemoteItem
from tests.conftest import FakeLLM


def _pr(additions: int = 10, deletions: int = 5) -> RemoteItem:
    return RemoteItem(
        key=NaturalKey.pull_request("org/api", 41),
        title="Add search endpoint",
        body="Implements full-text search.",
        additions=additions,
        deletions=deletions,
        changed_files=3,
        files=["src/search/index.py"],
    )


def _ticket(points: float | None) -> RemoteItem:
    return RemoteItem(key=NaturalKey.ticket("PROJ-12"), title="Search", story_points=points)


def _criteria() -> list[Criterion]:
    return [
        Criterion(id=1, area="Delivery", subarea="Scope", description="Ships features"),
        Criterion(id=2, area="Quality", subarea="Testing", description="Writes tests"),
        Criterion(id=3, area="Craft", subarea="Design", description="Sound design"),
        Criterion(id=4, area="Team", subarea="Mentoring", description="Helps others"),
    ]


class TestScopeEstimate:
    """Tests for the heuristic scope fallback."""

    @pytest.mark.parametrize(
        ("additions", "expected"),
        [(10, "small"), (60, "medium"), (300, "large")],
    )
    def test_pull_request_lines(self, additions, expected) -> None:
        assert estimate_scope(_pr(additions=additions, deletions=0)) == expected

    @pytest.mark.parametrize(
        ("points", "expected"),
        [(1, "small"), (3, "medium"), (8, "large"), (None, "small")],
    )
    def test_ticket_story_points(self, points, expected) -> None:
        assert estimate_scope(_ticket(points)) == expected


class TestAnalyzeItem:
    """Tests for analyze_item and its normalization."""

    def test_describe_pull_request(self) -> None:
        text = describe_item(_pr())
        assert "org/api#41" in text
        assert "+10 -5 in 3 files" in text

    @pytest.mark.asyncio
    async def test_model_output_used(self) -> None:
        llm = FakeLLM([{"summary": "Added search.", "category": "Feature", "scope": "medium"}])

        analysis = await analyze_item(llm, _pr())

        assert analysis == ItemAnalysis(summary="Added search.", category="feature", scope="medium")
        assert "Add search endpoint" in llm.prompts[0]

    def test_sloppy_output_falls_back(self) -> None:
        analysis = _normalize_analysis({"category": "wizardry", "scope": "epic"}, _pr(300, 0))

        assert analysis.summary == "Add search endpoint"
        assert analysis.category == "other"
        assert analysis.scope == "large"

    def test_non_dict_output(self) -> None:
        assert _normalize_analysis(["nope"], _ticket(None)).category == "other"


class TestMatchCriteria:
    """Tests for criteria ranking."""

    @pytest.mark.asyncio
    async def test_no_criteria_skips_model(self) -> None:
        llm = FakeLLM()
        analysis = ItemAnalysis(summary="x")

        assert await match_criteria(llm, _pr(), analysis, []) == []
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_top_three_by_confidence(self) -> None:
        llm = FakeLLM([
            {
                "matches": [
                    {"criterionId": 1, "confidence": 0.6},
                    {"criterionId": 2, "confidence": 0.9, "rationale": "adds tests"},
                    {"criterionId": 3, "confidence": 0.7},
                    {"criterionId": 4, "confidence": 0.5},
                ]
            }
        ])

        matches = await match_criteria(llm, _pr(), ItemAnalysis(summary="x"), _criteria())

        assert [m.criterion_id for m in matches] == [2, 3, 1]
        assert matches[0].rationale == "adds tests"

    def test_unknown_ids_and_bad_entries_dropped(self) -> None:
        raw = {
            "matches": [
                {"criterionId": 99, "confidence": 0.9},
                {"criterionId": "two", "confidence": 0.9},
                "junk",
                {"criterion_id": "1", "confidence": 5},
            ]
        }

        matches = _normalize_matches(raw, {1, 2})

        assert len(matches) == 1
        assert matches[0].criterion_id == 1
        assert matches[0].confidence == 1.0

    def test_duplicate_ids_keep_best(self) -> None:
        raw = [{"criterionId": 1, "confidence": 0.3}, {"criterionId": 1, "confidence": 0.8}]
        assert _normalize_matches(raw, {1})[0].confidence == 0.8
