"""Advisory quality score for a generated article.

Starts at 100 and subtracts a fixed penalty per failed check. Checks are
independent; issues are reported in check order. The raw score can go
below zero, callers use ``QualityReport.clamped_score``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from articlegen.content.placeholders import count_placeholders

MAX_SCORE = 100

_TAG_RE = re.compile(r"<[^>]*>")
_H2_RE = re.compile(r"<h2\b", re.IGNORECASE)
_COLOR_RE = re.compile(r"color:\s*#[0-9a-f]{3,6}\b", re.IGNORECASE)
_HEX_RE = re.compile(r"#([0-9a-f]{3,6})", re.IGNORECASE)
_TABLE_SPAN_RE = re.compile(r"<table\b[\s\S]*?(?:</table>|$)", re.IGNORECASE)
_IMG_RE = re.compile(r"<img\b", re.IGNORECASE)

CTA_CLASS = "cta-banner"
CTA_KEYWORDS = ("資料請求", "無料", "お申し込み")
FAQ_MARKERS = ("FAQ", "よくある質問")

# Greys are always allowed; these are the cool greys the table styles use
TINTED_GREYS = frozenset({
    "111827", "1f2937", "374151", "4b5563", "6b7280",
    "9ca3af", "d1d5db", "e5e7eb", "f3f4f6", "f9fafb",
})


@dataclass
class CheckResult:
    """Outcome of a single quality check."""

    check_id: str
    name: str
    passed: bool = True
    penalty: int = 0
    details: str = ""
    issues: list[str] = field(default_factory=list)


class QualityReport(BaseModel):
    score: int = MAX_SCORE
    issues: list[str] = Field(default_factory=list)
    checks: list[CheckResult] = Field(default_factory=list)

    @property
    def clamped_score(self) -> int:
        return max(0, min(MAX_SCORE, self.score))


def strip_tags(html: str) -> str:
    return _TAG_RE.sub("", html or "")


# ── Body length ──────────────────────────────────────────────────────────

def check_body_length(html: str) -> CheckResult:
    chars = len(strip_tags(html))
    if chars >= 8000:
        return CheckResult("length", "Body Length", details=f"{chars} characters.")
    if chars >= 5000:
        return CheckResult(
            "length", "Body Length", passed=False, penalty=5,
            details=f"{chars} characters.",
            issues=[f"Body text is short: {chars} characters (8000+ recommended)."],
        )
    return CheckResult(
        "length", "Body Length", passed=False, penalty=15,
        details=f"{chars} characters.",
        issues=[f"Body text too short: {chars} characters (under 5000)."],
    )


# ── Heading structure ────────────────────────────────────────────────────

def check_headings(html: str) -> CheckResult:
    h2 = len(_H2_RE.findall(html or ""))
    if h2 >= 5:
        return CheckResult("headings", "H2 Headings", details=f"{h2} <h2> headings.")
    penalty = 5 if h2 >= 3 else 10
    return CheckResult(
        "headings", "H2 Headings", passed=False, penalty=penalty,
        details=f"{h2} <h2> headings.",
        issues=[f"Too few <h2> headings: {h2} (5+ recommended)."],
    )


# ── Colour monotony ──────────────────────────────────────────────────────

def is_monotone(hex_digits: str) -> bool:
    """True for greys (equal channels) and the allowed cool greys."""
    h = hex_digits.lower()
    if len(h) == 3:
        h = "".join(ch * 2 for ch in h)
    if len(h) != 6:
        return False
    if h[0:2] == h[2:4] == h[4:6]:
        return True
    return h in TINTED_GREYS


def check_colour_monotony(html: str) -> CheckResult:
    violations: list[str] = []
    for m in _COLOR_RE.finditer(html or ""):
        hex_match = _HEX_RE.search(m.group(0))
        if hex_match and not is_monotone(hex_match.group(1)):
            violations.append(m.group(0))
    if not violations:
        return CheckResult("colour", "Colour Monotony")
    return CheckResult(
        "colour", "Colour Monotony", passed=False, penalty=5,
        details=f"{len(violations)} non-monotone colour declaration(s).",
        issues=[f"Non-monotone colour: {v}" for v in violations],
    )


# ── Tables ───────────────────────────────────────────────────────────────

def check_tables(html: str) -> CheckResult:
    tables = _TABLE_SPAN_RE.findall(html or "")
    if not tables:
        return CheckResult("tables", "Table Structure", details="No tables.")
    headerless = [t for t in tables if "<th" not in t.lower()]
    if not headerless:
        return CheckResult("tables", "Table Structure", details=f"{len(tables)} table(s).")
    return CheckResult(
        "tables", "Table Structure", passed=False, penalty=5,
        details=f"{len(headerless)}/{len(tables)} table(s) without a header.",
        issues=[f"{len(headerless)} table(s) have no <thead> or <th> header."],
    )


# ── Call to action ───────────────────────────────────────────────────────

def check_cta(html: str) -> CheckResult:
    html = html or ""
    if CTA_CLASS in html.lower():
        return CheckResult("cta", "Call To Action", details="CTA banner present.")
    if any(k in html for k in CTA_KEYWORDS):
        return CheckResult("cta", "Call To Action", details="CTA text present (no banner).")
    return CheckResult(
        "cta", "Call To Action", passed=False, penalty=5,
        issues=["No call to action found."],
    )


# ── FAQ ──────────────────────────────────────────────────────────────────

def check_faq(html: str) -> CheckResult:
    if any(marker in (html or "") for marker in FAQ_MARKERS):
        return CheckResult("faq", "FAQ Section")
    return CheckResult("faq", "FAQ Section", passed=False, issues=["No FAQ section."])


# ── Images ───────────────────────────────────────────────────────────────

def check_images(html: str) -> CheckResult:
    # Placeholders become images after generation, so they count
    images = len(_IMG_RE.findall(html or "")) + count_placeholders(html)
    if images >= 3:
        return CheckResult("images", "Images", details=f"{images} image(s).")
    if images >= 1:
        return CheckResult(
            "images", "Images", passed=False, details=f"{images} image(s).",
            issues=[f"Few images: {images} (3+ recommended)."],
        )
    return CheckResult("images", "Images", passed=False, issues=["No images."])


# ── SEO metadata ─────────────────────────────────────────────────────────

def check_seo_meta(meta_title: str | None, meta_description: str | None) -> CheckResult:
    missing = [
        name for name, value in (("meta title", meta_title), ("meta description", meta_description))
        if not (value or "").strip()
    ]
    if not missing:
        return CheckResult("seo_meta", "SEO Metadata")
    return CheckResult(
        "seo_meta", "SEO Metadata", passed=False, penalty=10,
        issues=[f"SEO metadata incomplete: missing {' and '.join(missing)}."],
    )


def score_article(
    html: str,
    meta_title: str | None = None,
    meta_description: str | None = None,
) -> QualityReport:
    """Run every check in order and accumulate penalties."""
    checks = [
        check_body_length(html),
        check_headings(html),
        check_colour_monotony(html),
        check_tables(html),
        check_cta(html),
        check_faq(html),
        check_images(html),
        check_seo_meta(meta_title, meta_description),
    ]
    score = MAX_SCORE - sum(c.penalty for c in checks)
    issues = [issue for c in checks for issue in c.issues]
    return QualityReport(score=score, issues=issues, checks=checks)
