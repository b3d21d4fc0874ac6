"""Article quality audit."""

from articlegen.audit.quality import CheckResult, QualityReport, score_article

__all__ = ["CheckResult", "QualityReport", "score_article"]
