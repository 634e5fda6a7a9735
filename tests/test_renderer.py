"""
Tests for Response Renderer.
============================

Tests for:
- Table parsing and degradation to preformatted text
- Scholarship card detection and field parsing
- Segmentation of mixed assistant output
"""

import pytest

from unipreply.shared.schemas import ProseBlock, ScholarshipCardBlock, TableBlock


COMPARISON_TABLE = """| Metric | Yale University | Brown University |
|---|---|---|
| Acceptance Rate | 3.7% | 5.2% |
| Tuition | $67,250 | $68,612 |"""


# ─────────────────────────────────────────────────────────────────────────────
# Table Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestTables:
    """Tests for pipe table parsing."""

    def test_well_formed_table(self):
        from unipreply.chat.renderer import render_blocks

        blocks = render_blocks(COMPARISON_TABLE)

        assert len(blocks) == 1
        table = blocks[0]
        assert isinstance(table, TableBlock)
        assert table.headers == ["Metric", "Yale University", "Brown University"]
        assert len(table.rows) == 2
        assert all(len(row) == len(table.headers) for row in table.rows)
        assert table.rows[1] == ["Tuition", "$67,250", "$68,612"]

    def test_table_without_outer_pipes(self):
        from unipreply.chat.renderer import parse_table

        table = parse_table(["A | B", "--|--", "1 | 2"])

        assert table.headers == ["A", "B"]
        assert table.rows == [["1", "2"]]

    def test_column_mismatch_degrades(self):
        from unipreply.chat.renderer import render_blocks

        text = "| A | B |\n|---|---|\n| 1 | 2 | 3 |"
        blocks = render_blocks(text)

        assert blocks == [ProseBlock(text=text, preformatted=True)]

    def test_header_only_degrades(self):
        from unipreply.chat.renderer import render_blocks

        blocks = render_blocks("| A | B |\n|---|---|")

        assert len(blocks) == 1
        assert isinstance(blocks[0], ProseBlock)
        assert blocks[0].preformatted

    @pytest.mark.parametrize("text", ["|||", "|", "| |\n| |", "||\n---\n|", "| A |\n|---"])
    def test_garbage_never_raises(self, text):
        from unipreply.chat.renderer import render_blocks

        blocks = render_blocks(text)

        assert all(not isinstance(b, TableBlock) or b.rows for b in blocks)

    def test_table_between_prose(self):
        from unipreply.chat.renderer import render_blocks

        text = f"Here is a comparison:\n{COMPARISON_TABLE}\nBoth are very selective."
        blocks = render_blocks(text)

        assert [b.kind for b in blocks] == ["prose", "table", "prose"]
        assert blocks[0].text == "Here is a comparison:"
        assert blocks[2].text == "Both are very selective."


# ─────────────────────────────────────────────────────────────────────────────
# Plain Text Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestPlainText:
    """Tests for plain text passthrough."""

    @pytest.mark.parametrize(
        "text",
        [
            "Yale is very selective.",
            "Yale is in New Haven.\n\n- Strong humanities\n- Residential colleges\n",
            "  Indented first line\nsecond line",
        ],
    )
    def test_plain_text_is_single_prose_block(self, text):
        from unipreply.chat.renderer import render_blocks

        assert render_blocks(text) == [ProseBlock(text=text)]

    def test_rendering_is_idempotent(self):
        from unipreply.chat.renderer import render_blocks

        text = "Brown has an open curriculum.\nIt is in Providence."
        first = render_blocks(text)

        assert render_blocks(first[0].text) == first

    def test_empty_text(self):
        from unipreply.chat.renderer import render_blocks

        assert render_blocks("") == []


# ─────────────────────────────────────────────────────────────────────────────
# Scholarship Card Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestScholarshipCards:
    """Tests for scholarship card parsing."""

    def test_delimited_card(self):
        from unipreply.chat.renderer import render_blocks

        text = (
            "Here are some options:\n"
            "---\n"
            "SCHOLARSHIP: **Yale First-Year Grant**\n"
            "Amount: $10,000 per year\n"
            "Deadline: January 2\n"
            "Eligibility: First-year applicants, demonstrated need\n"
            "Type: Need-based\n"
            "More Info: https://finaid.yale.edu\n"
            "---\n"
            "Let me know if you want more."
        )
        blocks = render_blocks(text)

        assert [b.kind for b in blocks] == ["prose", "scholarship", "prose"]
        card = blocks[1]
        assert card.name == "Yale First-Year Grant"
        assert card.amount == "$10,000 per year"
        assert card.deadline == "January 2"
        assert card.eligibility == "First-year applicants, demonstrated need"
        assert card.type == "Need-based"
        assert card.link == "https://finaid.yale.edu"

    def test_crlf_delimited_card(self):
        from unipreply.chat.renderer import render_blocks

        text = (
            "Here are some options:\r\n"
            "---\r\n"
            "SCHOLARSHIP: Merit Award\r\n"
            "Amount: $5,000\r\n"
            "Deadline: March 1\r\n"
            "---\r\n"
            "Good luck!"
        )
        blocks = render_blocks(text)

        assert blocks == [
            ProseBlock(text="Here are some options:"),
            ScholarshipCardBlock(name="Merit Award", amount="$5,000", deadline="March 1"),
            ProseBlock(text="Good luck!"),
        ]

    def test_crlf_undelimited_run_ends_at_paragraph(self):
        from unipreply.chat.renderer import render_blocks

        blocks = render_blocks("SCHOLARSHIP: Alpha Grant\r\nAmount: $1,000\r\n\r\nGood luck.")

        assert [b.kind for b in blocks] == ["scholarship", "prose"]
        assert blocks[0].amount == "$1,000"
        assert blocks[1].text == "Good luck."

    def test_card_fields_use_shared_emphasis_helper(self):
        from unipreply.chat import renderer
        from unipreply.shared import utils

        assert renderer.strip_emphasis is utils.strip_emphasis

    def test_segment_detected_without_marker(self):
        from unipreply.chat.renderer import render_blocks

        blocks = render_blocks("---\nName: The Brown Promise\nAmount: Full need\nDeadline: Feb 1\n---")

        assert blocks == [
            ScholarshipCardBlock(name="The Brown Promise", amount="Full need", deadline="Feb 1")
        ]

    def test_stray_emphasis_removed(self):
        from unipreply.chat.renderer import parse_scholarship

        card = parse_scholarship(
            "SCHOLARSHIP: Merit Award\n**Amount:** **$5,000**\n- Deadline: *March 1*\n**Type:** Merit"
        )

        assert card.amount == "$5,000"
        assert card.deadline == "March 1"
        assert card.type == "Merit"

    def test_alternate_link_labels_and_audience(self):
        from unipreply.chat.renderer import parse_scholarship

        card = parse_scholarship(
            "SCHOLARSHIP: Transfer Award\nFor: transfer\nWebsite: https://example.edu\nDetails: Renewable"
        )

        assert card.audience == "transfer"
        assert card.link == "https://example.edu"
        assert card.details == "Renewable"
        assert ("For", "transfer") in card.fields()

    def test_undelimited_runs(self):
        from unipreply.chat.renderer import render_blocks

        text = (
            "Two options:\n\n"
            "SCHOLARSHIP: Alpha Grant\nAmount: $1,000\n"
            "SCHOLARSHIP: Beta Grant\nAmount: $2,000\n\n"
            "Good luck with your applications."
        )
        blocks = render_blocks(text)

        assert [b.kind for b in blocks] == ["prose", "scholarship", "scholarship", "prose"]
        assert [b.name for b in blocks[1:3]] == ["Alpha Grant", "Beta Grant"]
        assert blocks[3].text == "Good luck with your applications."

    def test_is_scholarship_segment(self):
        from unipreply.chat.renderer import is_scholarship_segment

        assert is_scholarship_segment("SCHOLARSHIP: X")
        assert is_scholarship_segment("Amount: $1\nEligibility: all")
        assert not is_scholarship_segment("Amount: $1 only")
