"""Allow-list checks for generated SQL before it is sent to the query service.

This is a keyword scan, not a parser. It does not stop keywords hidden in
string literals or encodings, and it cannot prove a statement is read-only.
The query service credentials should be read-only regardless; this module
only keeps obviously unsafe or unbounded statements from leaving the gateway.
"""

import re
from dataclasses import dataclass
from typing import Optional

from errors import (
    ErrorKind,
    ForbiddenKeywordError,
    MissingLimitError,
    NotSelectError,
    SqlPolicyError,
)

FORBIDDEN_KEYWORDS = ("DROP", "DELETE", "UPDATE", "INSERT", "CREATE", "ALTER", "TRUNCATE")

# \b treats "_" as a word character, so updated_at / created_at never match
FORBIDDEN_SQL_RE = re.compile(r"\b(" + "|".join(FORBIDDEN_KEYWORDS) + r")\b")
LIMIT_RE = re.compile(r"\bLIMIT\b")
LEADING_NOISE_RE = re.compile(r"\A(?:\s+|--[^\n]*(?:\n|\Z)|/\*.*?\*/)*", re.DOTALL)
FIRST_KEYWORD_RE = re.compile(r"[A-Z_][A-Z0-9_$]*")


@dataclass(frozen=True)
class ValidationVerdict:
    accepted: bool
    reason: Optional[ErrorKind] = None
    keyword: Optional[str] = None


ACCEPTED = ValidationVerdict(accepted=True)


def first_keyword(sql: str) -> Optional[str]:
    """Return the first keyword after leading whitespace and comments, upper-cased."""
    upper = sql.upper()
    start = LEADING_NOISE_RE.match(upper).end()
    match = FIRST_KEYWORD_RE.match(upper, start)
    return match.group(0) if match else None


def validate(candidate: str) -> ValidationVerdict:
    """Check a candidate statement against the policy. First failure wins."""
    upper = candidate.upper()

    if first_keyword(candidate) != "SELECT":
        return ValidationVerdict(accepted=False, reason=ErrorKind.NOT_SELECT)

    forbidden = FORBIDDEN_SQL_RE.search(upper)
    if forbidden:
        return ValidationVerdict(
            accepted=False,
            reason=ErrorKind.FORBIDDEN_KEYWORD,
            keyword=forbidden.group(1),
        )

    if not LIMIT_RE.search(upper):
        return ValidationVerdict(accepted=False, reason=ErrorKind.MISSING_LIMIT)

    return ACCEPTED


_ERRORS = {
    ErrorKind.NOT_SELECT: NotSelectError,
    ErrorKind.FORBIDDEN_KEYWORD: ForbiddenKeywordError,
    ErrorKind.MISSING_LIMIT: MissingLimitError,
}


def error_for(verdict: ValidationVerdict) -> SqlPolicyError:
    error_cls = _ERRORS[verdict.reason]
    if verdict.keyword:
        return error_cls(
            detail=f"keyword {verdict.keyword}",
            message=f"Forbidden SQL keyword detected: {verdict.keyword}",
        )
    return error_cls()


def ensure_valid(candidate: str) -> str:
    """Raise the matching SqlPolicyError if the statement is rejected."""
    verdict = validate(candidate)
    if not verdict.accepted:
        raise error_for(verdict)
    return candidate
