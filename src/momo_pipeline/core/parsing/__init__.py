"""
SMS classification and field extraction.
"""

from .amounts import parse_amount
from .classifier import MessageClassifier
from .heuristic import FallbackParser, KeywordHeuristicParser
from .reference import compute_reference

__all__ = [
    "parse_amount",
    "compute_reference",
    "MessageClassifier",
    "FallbackParser",
    "KeywordHeuristicParser",
]
