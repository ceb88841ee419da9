"""Suggestion model, span mapping, normalization and edit reconciliation."""

from .models import RawMatch, Severity, Suggestion
from .normalizer import normalize
from .reconciler import SuggestionApplyError, apply_suggestion, dismiss_suggestion
from .span_mapper import map_match, map_matches

__all__ = [
    "RawMatch",
    "Severity",
    "Suggestion",
    "SuggestionApplyError",
    "apply_suggestion",
    "dismiss_suggestion",
    "map_match",
    "map_matches",
    "normalize",
]
