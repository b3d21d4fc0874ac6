"""Tests for HTML table repair and generated-HTML cleanup."""

import re

import pytest

from articlegen.content.repair import (
    BROKEN_HEADER_RE,
    TABLE_STYLE,
    TD_STYLE,
    TH_STYLE,
    clean_generated_html,
    find_unrepaired_tables,
    repair_tables,
)

_STYLE_ATTR_RE = re.compile(r' style="[^"]*"')

SAMPLES = [
    '<table style="x"><th style="y"><tr><th>H1</th></tr></th><tr><td>d1</td></tr></table>',
    "<table>\n  <th>\n    <tr><th>A</th><th>B</th></tr>\n  </th>\n  <tr><td>1</td><td>2</td></tr>\n</table>",
    "<table><th>料金表<tr><th>A</th></tr></th><tr><td>1</td></tr></table>",
    "<table><th>A</th><th>B</th><tr><td>1</td></tr></table>",
    '<table class="t"><thead><tr><th>A</th></tr></thead><tbody><tr><td>1</td></tr></tbody></table>',
    "<p>no tables here</p>",
    "",
]


def _without_styles(html: str) -> str:
    return _STYLE_ATTR_RE.sub("", html)


class TestRepairTables:

    def test_canonical_broken_header(self):
        html = '<table style="x"><th style="y"><tr><th>H1</th></tr></th><tr><td>d1</td></tr></table>'
        assert repair_tables(html) == (
            f'<table style="{TABLE_STYLE}"><thead><tr><th style="{TH_STYLE}">H1</th></tr></thead>'
            f'<tbody><tr><td style="{TD_STYLE}">d1</td></tr></tbody></table>'
        )

    def test_broken_header_with_whitespace(self):
        fixed = repair_tables(SAMPLES[1])
        assert "<thead>" in fixed
        assert "<tbody>" in fixed
        assert not BROKEN_HEADER_RE.search(fixed)
        assert find_unrepaired_tables(fixed) == []

    def test_stray_wrapper_text_becomes_caption(self):
        fixed = repair_tables(SAMPLES[2])
        assert "<caption>料金表</caption><thead><tr>" in fixed
        assert "<tbody><tr>" in fixed
        assert find_unrepaired_tables(fixed) == []

    def test_wellformed_table_changes_only_styles(self):
        html = (
            '<table style="border:1px solid red"><thead><tr><th style="color:red">A</th></tr></thead>'
            '<tbody><tr><td style="padding:0">1</td></tr></tbody></table>'
        )
        fixed = repair_tables(html)
        assert _without_styles(fixed) == _without_styles(html)
        assert f'<th style="{TH_STYLE}">' in fixed

    def test_thead_is_never_restyled(self):
        fixed = repair_tables(SAMPLES[4])
        assert "<thead>" in fixed
        assert "<thead style" not in fixed

    def test_row_and_section_attributes_stripped(self):
        html = '<table><thead class="h"><tr class="r"><th>A</th></tr></thead><tbody id="b"><tr data-x="1"><td>1</td></tr></tbody></table>'
        fixed = repair_tables(html)
        assert "<thead><tr>" in fixed
        assert "<tbody><tr>" in fixed

    def test_text_outside_tables_untouched(self):
        html = f'<p style="color:#333">intro</p>{SAMPLES[0]}<p>outro</p>'
        fixed = repair_tables(html)
        assert fixed.startswith('<p style="color:#333">intro</p>')
        assert fixed.endswith("<p>outro</p>")

    def test_each_table_repaired_independently(self):
        html = SAMPLES[0] + "<p>between</p>" + SAMPLES[4]
        fixed = repair_tables(html)
        assert fixed.count("<thead>") == 2
        assert fixed.count("<tbody>") == 2
        assert "<p>between</p>" in fixed

    @pytest.mark.parametrize("html", SAMPLES)
    def test_idempotent(self, html):
        once = repair_tables(html)
        assert repair_tables(once) == once


class TestFindUnrepairedTables:

    def test_header_cells_without_row_stay_flagged(self):
        fixed = repair_tables(SAMPLES[3])
        unrepaired = find_unrepaired_tables(fixed)
        assert len(unrepaired) == 1
        assert unrepaired[0].startswith("<table")

    def test_clean_article_has_none(self):
        assert find_unrepaired_tables(repair_tables(SAMPLES[0] + SAMPLES[4])) == []

    def test_empty_input(self):
        assert find_unrepaired_tables("") == []


class TestCleanGeneratedHtml:

    def test_strips_document_wrapper(self):
        raw = (
            "```html\n<!DOCTYPE html><html lang=\"ja\"><head><title>t</title><style>p{}</style></head>"
            "<body><h2>見出し</h2><script>alert(1)</script><p>本文</p></body></html>\n```"
        )
        assert clean_generated_html(raw) == "<h2>見出し</h2><p>本文</p>"

    def test_removes_json_ld(self):
        raw = '<p>a</p><script type="application/ld+json">{"@type": "Article"}</script>'
        assert clean_generated_html(raw) == "<p>a</p>"

    def test_keeps_placeholders(self):
        marker = '<!-- IMAGE_PLACEHOLDER: position="hero" context="c" alt_hint="a" -->'
        assert marker in clean_generated_html(f"<body>{marker}<p>x</p></body>")

    def test_collapses_blank_lines(self):
        assert clean_generated_html("<p>a</p>\n\n\n\n<p>b</p>") == "<p>a</p>\n\n<p>b</p>"
