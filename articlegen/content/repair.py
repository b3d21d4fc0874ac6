"""Deterministic repair of model-generated HTML.

The draft model regularly emits ``<th>`` straight after ``<table>`` as a
stand-in for ``<thead>``, often with the header ``<tr>`` nested inside that
stray cell. ``repair_tables`` rewrites exactly those shapes, table by table,
and re-applies a canonical inline style so every table renders the same.
It is a narrow regex grammar, not an HTML parser, and it is idempotent:
``repair_tables(repair_tables(h)) == repair_tables(h)``.
"""

from __future__ import annotations

import re

TABLE_STYLE = "width:100%;border-collapse:collapse;margin:24px 0;"
TH_STYLE = (
    "padding:12px 16px;border:1px solid #e5e7eb;text-align:left;"
    "font-weight:600;color:#374151;background:#f3f4f6;"
)
TD_STYLE = "padding:12px 16px;border:1px solid #e5e7eb;vertical-align:top;"

_TABLE_SPAN_RE = re.compile(r"<table\b[\s\S]*?</table>", re.IGNORECASE)

# <th> but never <thead>
_TH_OPEN = r"<th(?![a-z])[^>]*>"

# A <th> directly after <table>; still matching after repair means unrepairable
BROKEN_HEADER_RE = re.compile(r"<table[^>]*>\s*" + _TH_OPEN, re.IGNORECASE)

# <table><th><tr>...</tr></th>
_WRAPPED_ROW_RE = re.compile(
    r"(<table[^>]*>)(\s*)" + _TH_OPEN + r"(\s*)(<tr>[\s\S]*?</tr>)(\s*)</th>",
    re.IGNORECASE,
)
# <table><th>caption text<tr>...</tr></th>
_STRAY_WRAPPER_RE = re.compile(
    r"(<table[^>]*>)\s*" + _TH_OPEN + r"([^<]*)(<tr>[\s\S]*?</tr>)(\s*)</th>",
    re.IGNORECASE,
)
_TBODY_WRAP_RE = re.compile(r"(</thead>)(\s*)(<tr>[\s\S]*?)(</table>)", re.IGNORECASE)

_TABLE_OPEN_RE = re.compile(r"<table\b[^>]*>", re.IGNORECASE)
_TH_OPEN_RE = re.compile(_TH_OPEN, re.IGNORECASE)
_TD_OPEN_RE = re.compile(r"<td\b[^>]*>", re.IGNORECASE)
_TR_OPEN_RE = re.compile(r"<tr\b[^>]*>", re.IGNORECASE)
_THEAD_OPEN_RE = re.compile(r"<thead\b[^>]*>", re.IGNORECASE)
_TBODY_OPEN_RE = re.compile(r"<tbody\b[^>]*>", re.IGNORECASE)

_FENCE_HEAD_RE = re.compile(r"^```(?:html)?\s*", re.IGNORECASE)
_FENCE_TAIL_RE = re.compile(r"\s*```$")
_DOCTYPE_RE = re.compile(r"<!DOCTYPE[^>]*>", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"</?html\b[^>]*>", re.IGNORECASE)
_HEAD_RE = re.compile(r"<head\b[^>]*>[\s\S]*?</head>", re.IGNORECASE)
_BODY_TAG_RE = re.compile(r"</?body\b[^>]*>", re.IGNORECASE)
_SCRIPT_RE = re.compile(r"<script\b[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style\b[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def _has_thead(fragment: str) -> bool:
    return "<thead" in fragment.lower()


def _unwrap_stray_header(match: re.Match[str]) -> str:
    table, text, rows, trailing = match.groups()
    caption = f"<caption>{text.strip()}</caption>" if text.strip() else ""
    return f"{table}{caption}<thead>{rows}{trailing}</thead>"


def repair_table(table_html: str) -> str:
    """Repair a single ``<table>...</table>`` fragment."""
    result = table_html

    # Bare tags first so the structural patterns only have to handle <tr>
    result = _TR_OPEN_RE.sub("<tr>", result)
    result = _THEAD_OPEN_RE.sub("<thead>", result)
    result = _TBODY_OPEN_RE.sub("<tbody>", result)

    if not _has_thead(result):
        result = _WRAPPED_ROW_RE.sub(r"\1\2<thead>\3\4\5</thead>", result, count=1)
    if not _has_thead(result) and BROKEN_HEADER_RE.search(result):
        result = _STRAY_WRAPPER_RE.sub(_unwrap_stray_header, result, count=1)

    if _has_thead(result) and "<tbody" not in result.lower():
        result = _TBODY_WRAP_RE.sub(r"\1\2<tbody>\3</tbody>\4", result, count=1)

    result = _TABLE_OPEN_RE.sub(f'<table style="{TABLE_STYLE}">', result)
    result = _TH_OPEN_RE.sub(f'<th style="{TH_STYLE}">', result)
    result = _TD_OPEN_RE.sub(f'<td style="{TD_STYLE}">', result)
    return result


def repair_tables(html: str) -> str:
    """Repair every table in ``html``. Text outside tables is untouched."""
    if not html:
        return html
    return _TABLE_SPAN_RE.sub(lambda m: repair_table(m.group(0)), html)


def find_unrepaired_tables(html: str) -> list[str]:
    """Return the table fragments that still carry the broken-header shape."""
    return [
        m.group(0)
        for m in _TABLE_SPAN_RE.finditer(html or "")
        if BROKEN_HEADER_RE.search(m.group(0))
    ]


def clean_generated_html(raw_html: str) -> str:
    """Strip the document wrapper a model adds around an article body.

    Removes markdown fences, the doctype, ``<html>``/``<body>`` tags (keeping
    their content), the whole ``<head>``, and every ``<script>`` and
    ``<style>`` element.
    """
    html = (raw_html or "").strip()
    html = _FENCE_HEAD_RE.sub("", html)
    html = _FENCE_TAIL_RE.sub("", html)
    html = _DOCTYPE_RE.sub("", html)
    html = _HEAD_RE.sub("", html)
    html = _HTML_TAG_RE.sub("", html)
    html = _BODY_TAG_RE.sub("", html)
    html = _SCRIPT_RE.sub("", html)
    html = _STYLE_RE.sub("", html)
    html = html.strip()
    return _BLANK_LINES_RE.sub("\n\n", html)
