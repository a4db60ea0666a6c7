"""Tests for the pure extraction helpers."""

from evidence_engine.core.sync.extraction import (
    categorize_link,
    extract_components,
    extract_links,
    extract_pr_refs,
    extract_refs,
    extract_ticket_keys,
    parse_pr_title,
)
from evidence_engine.core.sync.types import NaturalKey, RemoteItem


class TestTicketKeys:
    """Tests for ticket key extraction."""

    def test_keys_in_order_without_duplicates(self) -> None:
        text = "Fixes PROJ-12 and OPS-7. Follow-up to PROJ-12."
        assert extract_ticket_keys(text) == ["PROJ-12", "OPS-7"]

    def test_lowercase_is_not_a_key(self) -> None:
        assert extract_ticket_keys("see proj-12") == []

    def test_empty_text(self) -> None:
        assert extract_ticket_keys("") == []


class TestPullRequestRefs:
    """Tests for PR reference extraction."""

    def test_urls_and_shorthand(self) -> None:
        text = (
            "Depends on https://github.com/org/api/pull/41 and org/web#9, "
            "again https://github.com/org/api/pull/41"
        )
        assert extract_pr_refs(text) == [("org/api", 41), ("org/web", 9)]

    def test_plain_issue_number_is_ignored(self) -> None:
        assert extract_pr_refs("closes #12") == []


class TestLinks:
    """Tests for link categorization."""

    def test_categorize(self) -> None:
        assert categorize_link("https://www.figma.com/file/abc") == "figma"
        assert categorize_link("https://acme.atlassian.net/wiki/spaces/ENG") == "confluence"
        assert categorize_link("https://docs.google.com/document/d/1") == "google"
        assert categorize_link("https://github.com/org/api") == "github"
        assert categorize_link("https://acme.slack.com/archives/C1") == "slack"
        assert categorize_link("https://example.com") == "other"

    def test_trailing_punctuation_is_stripped(self) -> None:
        links = extract_links("Design: https://www.figma.com/file/abc. Spec (https://example.com/spec).")

        assert links["figma"] == ["https://www.figma.com/file/abc"]
        assert links["other"] == ["https://example.com/spec"]

    def test_every_kind_is_present(self) -> None:
        links = extract_links("")
        assert set(links) == {"figma", "confluence", "google", "github", "slack", "other"}
        assert all(urls == [] for urls in links.values())


class TestComponents:
    """Tests for component derivation from file paths."""

    def test_source_roots_use_second_segment(self) -> None:
        files = ["src/billing/api.py", "src/billing/models.py", "packages/ui/button.tsx"]
        assert extract_components(files) == ["billing", "ui"]

    def test_other_paths_use_first_segment(self) -> None:
        assert extract_components(["docs/intro.md", "README.md"]) == ["docs"]

    def test_capped_at_five(self) -> None:
        files = [f"svc{i}/main.py" for i in range(8)]
        assert len(extract_components(files)) == 5


class TestParsePrTitle:
    """Tests for PR title parsing."""

    def test_ticket_and_conventional_prefix(self) -> None:
        parsed = parse_pr_title("[PROJ-12] feat(api): add search endpoint")

        assert parsed.ticket_key == "PROJ-12"
        assert parsed.commit_type == "feat"
        assert parsed.scope == "api"
        assert parsed.description == "add search endpoint"

    def test_keyword_guess(self) -> None:
        parsed = parse_pr_title("Fix login redirect loop")

        assert parsed.ticket_key is None
        assert parsed.commit_type == "fix"
        assert parsed.description == "Fix login redirect loop"

    def test_no_type(self) -> None:
        assert parse_pr_title("Billing v2").commit_type is None


class TestExtractRefs:
    """Tests for the combined extractor."""

    def test_pull_request_item(self) -> None:
        item = RemoteItem(
            key=NaturalKey.pull_request("org/api", 41),
            title="PROJ-12: feat: add search",
            body="Also touches OPS-7. Replaces org/api#41 and org/api#40. https://figma.com/file/x",
            files=["src/search/index.py"],
        )

        refs = extract_refs(item)

        assert refs.ticket_keys == ["PROJ-12", "OPS-7"]
        assert refs.pr_refs == [("org/api", 40)]
        assert refs.components == ["search"]
        assert refs.links["figma"] == ["https://figma.com/file/x"]
        assert refs.parsed_title is not None and refs.parsed_title.ticket_key == "PROJ-12"

    def test_ticket_item_excludes_own_key(self) -> None:
        item = RemoteItem(
            key=NaturalKey.ticket("PROJ-12"),
            title="Search",
            body="Blocked by PROJ-3",
            comments=["PR: https://github.com/org/api/pull/41", "PROJ-12 done"],
            components=["Search"],
        )

        refs = extract_refs(item)

        assert refs.ticket_keys == ["PROJ-3"]
        assert refs.pr_refs == [("org/api", 41)]
        assert refs.components == ["Search"]
        assert refs.parsed_title is None
        assert refs.to_dict()["prRefs"] == ["org/api#41"]
