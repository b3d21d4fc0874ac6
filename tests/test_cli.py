"""Tests for the repair and score CLI commands."""

import json

from typer.testing import CliRunner

from articlegen.cli import app
from tests.conftest import BROKEN_TABLE, make_article_html

runner = CliRunner()


def test_repair_writes_output(tmp_path):
    src = tmp_path / "article.html"
    src.write_text(BROKEN_TABLE, encoding="utf-8")
    out = tmp_path / "fixed.html"
    result = runner.invoke(app, ["repair", str(src), "-o", str(out)])
    assert result.exit_code == 0
    assert "<thead>" in out.read_text(encoding="utf-8")


def test_repair_flags_unrepairable_tables(tmp_path):
    src = tmp_path / "article.html"
    src.write_text("<table><th>A</th><tr><td>1</td></tr></table>", encoding="utf-8")
    result = runner.invoke(app, ["repair", str(src)])
    assert result.exit_code == 2


def test_repair_missing_file(tmp_path):
    result = runner.invoke(app, ["repair", str(tmp_path / "nope.html")])
    assert result.exit_code == 1


def test_score_json(tmp_path):
    src = tmp_path / "article.html"
    src.write_text(make_article_html(table=""), encoding="utf-8")
    result = runner.invoke(
        app,
        ["score", str(src), "--meta-title", "朝ヨガ", "--meta-description", "朝ヨガの効果", "--json"],
    )
    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["score"] == 100
    assert report["issues"] == []


def test_score_reports_missing_meta(tmp_path):
    src = tmp_path / "article.html"
    src.write_text(make_article_html(table=""), encoding="utf-8")
    result = runner.invoke(app, ["score", str(src), "--json"])
    assert json.loads(result.stdout)["score"] == 90
