"""AI due-date overrides driven by graded test results."""

from .adapter import AIOverrideAdapter, FailurePolicy, GradedResult, OverrideReport
from .oracle import GeminiOracle, Oracle, OracleRequest, OracleSuggestion, parse_suggestion

__all__ = [
    "AIOverrideAdapter",
    "FailurePolicy",
    "GradedResult",
    "OverrideReport",
    "GeminiOracle",
    "Oracle",
    "OracleRequest",
    "OracleSuggestion",
    "parse_suggestion",
]
