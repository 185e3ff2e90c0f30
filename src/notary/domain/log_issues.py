"""
Log issue parser — classify notarization log lines into issues.

Pure and deterministic: the same log text always yields the same issues,
in line order. Lines are kept verbatim as the issue message.
"""

from __future__ import annotations

from notary.domain.models import IssueSeverity, NotarizationIssue

_ERROR_MARKERS = ("error:", "ERROR:")
_WARNING_MARKERS = ("warning:", "WARNING:")


def _classify(line: str) -> IssueSeverity | None:
    if any(marker in line for marker in _ERROR_MARKERS):
        return IssueSeverity.ERROR
    if any(marker in line for marker in _WARNING_MARKERS):
        return IssueSeverity.WARNING
    return None


def parse_log_issues(log_text: str) -> list[NotarizationIssue]:
    """
    Turn raw log text into an ordered list of issues.

    A line mentioning both markers counts as an error. Lines with neither
    marker are dropped; nothing is deduplicated or trimmed.
    """
    issues: list[NotarizationIssue] = []
    for line in log_text.splitlines():
        severity = _classify(line)
        if severity is not None:
            issues.append(NotarizationIssue(severity=severity, message=line))
    return issues
