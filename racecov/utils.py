"""Shared exceptions and small helpers for racecov."""

import json
from enum import Enum
from typing import Any


__all__ = [
    "AnalysisError",
    "ProgramModelError",
    "FixpointDivergenceError",
    "RefinementError",
    "AnnotationParseError",
    "make_json_serializable",
]


class AnalysisError(Exception):
    """Base class for errors raised by the analysis engine."""

    def __init__(self, message, logger=None):
        super().__init__(message)
        self.message = message
        if logger is not None:
            logger.log_error(message)


class ProgramModelError(AnalysisError):
    """The program model handed over by the front-end is malformed."""
    pass


class FixpointDivergenceError(AnalysisError):
    pass


class RefinementError(AnalysisError):
    pass


class AnnotationParseError(AnalysisError):
    pass


def make_json_serializable(obj: Any) -> Any:
    if obj is None:
        return None
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, (str, int, float, bool)):
        return obj
    elif isinstance(obj, (list, tuple, set, frozenset)):
        items = [make_json_serializable(item) for item in obj]
        if isinstance(obj, (set, frozenset)):
            items.sort(key=lambda item: json.dumps(item, sort_keys=True))
        return items
    elif isinstance(obj, dict):
        return {str(k): make_json_serializable(v) for k, v in obj.items()}
    elif hasattr(obj, "to_dict"):
        return make_json_serializable(obj.to_dict())
    elif hasattr(obj, "__dict__"):
        return {"_type": obj.__class__.__name__, **{k: make_json_serializable(v) for k, v in obj.__dict__.items()}}
    else:
        return str(obj)
