"""Tests for the advisory article quality scorer."""

from articlegen.audit.quality import (
    check_colour_monotony,
    check_cta,
    check_faq,
    check_images,
    check_tables,
    is_monotone,
    score_article,
)
from articlegen.content.repair import repair_tables
from tests.conftest import BROKEN_TABLE, make_article_html

META_TITLE = "朝ヨガの効果"
META_DESCRIPTION = "朝ヨガの効果を解説します。"


class TestScoreArticle:

    def test_complete_article_scores_100(self):
        html = repair_tables(make_article_html())
        report = score_article(html, META_TITLE, META_DESCRIPTION)
        assert report.score == 100
        assert report.issues == []
        assert [c.check_id for c in report.checks] == [
            "length", "headings", "colour", "tables", "cta", "faq", "images", "seo_meta",
        ]

    def test_short_article_missing_description(self):
        html = "<h2>a</h2><h2>b</h2><p>" + "x" * 4000 + "</p>"
        report = score_article(html, META_TITLE, None)
        assert report.score <= 100 - 15 - 10 - 10
        assert any("too short" in i for i in report.issues)
        assert any("<h2>" in i for i in report.issues)
        assert any("meta description" in i for i in report.issues)

    def test_issues_follow_check_order(self):
        report = score_article("<p>tiny</p>", None, None)
        order = ["too short", "<h2>", "call to action", "FAQ", "No images", "SEO metadata"]
        positions = [next(i for i, issue in enumerate(report.issues) if key in issue) for key in order]
        assert positions == sorted(positions)

    def test_removing_meta_description_costs_exactly_10(self):
        html = repair_tables(make_article_html())
        full = score_article(html, META_TITLE, META_DESCRIPTION)
        without = score_article(html, META_TITLE, "")
        assert full.score - without.score == 10

    def test_adding_h2_never_lowers_score(self):
        for count in range(0, 5):
            html = make_article_html(h2_count=count, table="")
            more = html + "<h2>追加</h2>"
            assert score_article(more, META_TITLE, META_DESCRIPTION).score >= score_article(
                html, META_TITLE, META_DESCRIPTION
            ).score

    def test_length_bands(self):
        base = make_article_html(paragraph_chars=6000, table="")
        report = score_article(base, META_TITLE, META_DESCRIPTION)
        length = report.checks[0]
        assert length.penalty == 5

    def test_clamped_score(self):
        html = '<p style="color:#ff0000">x</p><table><tr><td>1</td></tr></table>'
        report = score_article(html, None, None)
        assert report.score == 100 - 15 - 10 - 5 - 5 - 5 - 10
        assert report.clamped_score == report.score
        report.score = -20
        assert report.clamped_score == 0


class TestIndividualChecks:

    def test_monotone_palette(self):
        assert is_monotone("333")
        assert is_monotone("FFFFFF")
        assert is_monotone("374151")
        assert not is_monotone("f00")
        assert not is_monotone("1a73e8")

    def test_all_colour_violations_reported_once_penalised(self):
        html = '<p style="color:#ff0000">a</p><span style="color: #00ff00">b</span><p style="color:#333">c</p>'
        result = check_colour_monotony(html)
        assert result.penalty == 5
        assert len(result.issues) == 2

    def test_repaired_tables_pass_monotony(self):
        assert check_colour_monotony(repair_tables(BROKEN_TABLE)).passed

    def test_headerless_table_penalised(self):
        result = check_tables("<table><tr><td>1</td></tr></table>")
        assert result.penalty == 5

    def test_no_tables_is_fine(self):
        assert check_tables("<p>x</p>").passed

    def test_cta_text_without_banner(self):
        result = check_cta("<p>資料請求はこちら</p>")
        assert result.passed
        assert "no banner" in result.details

    def test_missing_faq_not_penalised(self):
        result = check_faq("<p>x</p>")
        assert not result.passed
        assert result.penalty == 0

    def test_images_count_placeholders(self):
        html = '<img src="a.jpg"><!-- IMAGE_PLACEHOLDER: position="hero" context="c" alt_hint="a" -->'
        result = check_images(html)
        assert result.penalty == 0
        assert "Few images: 2" in result.issues[0]

    def test_no_images_reported_without_penalty(self):
        result = check_images("<p>x</p>")
        assert result.issues == ["No images."]
        assert result.penalty == 0
