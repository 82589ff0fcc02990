"""Utility modules for stock score."""

from stock_score.utils.provenance import build_error_response, build_meta
from stock_score.utils.serialize import to_jsonable

__all__ = [
    "build_error_response",
    "build_meta",
    "to_jsonable",
]
