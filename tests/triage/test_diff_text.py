"""Tests for diff-table rendering."""

from wikitriage.triage.diff_text import MAX_LINES, readable_diff

LINE_NUMBERS = (
    '<tr><td colspan="2" class="diff-lineno">Line 1:</td>'
    '<td colspan="2" class="diff-lineno">Line 1:</td></tr>'
)


def _context(text: str) -> str:
    return (
        '<tr><td class="diff-marker"></td><td class="diff-context diff-side-deleted">'
        f"<div>{text}</div></td><td class=\"diff-marker\"></td>"
        f'<td class="diff-context diff-side-added"><div>{text}</div></td></tr>'
    )


def _change(old: str, new: str) -> str:
    return (
        '<tr><td class="diff-marker" data-marker="-"></td>'
        f'<td class="diff-deletedline diff-side-deleted"><div>{old}</div></td>'
        '<td class="diff-marker" data-marker="+"></td>'
        f'<td class="diff-addedline diff-side-added"><div>{new}</div></td></tr>'
    )


def _addition(new: str) -> str:
    return (
        '<tr><td colspan="2" class="diff-empty diff-side-deleted"></td>'
        '<td class="diff-marker" data-marker="+"></td>'
        f'<td class="diff-addedline diff-side-added"><div>{new}</div></td></tr>'
    )


class TestReadableDiff:
    def test_inline_changes_are_marked(self):
        html = LINE_NUMBERS + _context("Intro text.") + _change(
            'The moon is <del class="diffchange">rocky</del>.',
            'The moon is <ins class="diffchange">cheese</ins>.',
        )
        assert readable_diff(html) == (
            "  Intro text.\n"
            "- The moon is ~~rocky~~.\n"
            "+ The moon is [[cheese]]."
        )

    def test_pure_addition(self):
        assert readable_diff(_addition("A brand new paragraph")) == "+ A brand new paragraph"

    def test_context_is_limited_around_changes(self):
        html = (
            _context("one") + _context("two") + _context("three")
            + _addition("added")
            + _context("four") + _context("five") + _context("six")
        )
        assert readable_diff(html).splitlines() == [
            "  two",
            "  three",
            "+ added",
            "  four",
            "  five",
        ]

    def test_long_diffs_are_truncated(self):
        html = "".join(_addition(f"line {n}") for n in range(MAX_LINES + 10))
        rendered = readable_diff(html)
        assert "(10 more lines omitted)" in rendered
        assert "line 59" in rendered
        assert "line 60" not in rendered

    def test_non_table_payload_falls_back_to_text(self):
        assert readable_diff("Just some <b>content</b>\n here") == "Just some content here"

    def test_only_line_numbers(self):
        assert readable_diff(LINE_NUMBERS) == "No significant changes detected in diff"

    def test_empty_payloads(self):
        assert readable_diff(None) == "No changes visible"
        assert readable_diff("") == "No changes visible"
        assert readable_diff({"html": "x"}) == "No changes visible"
