"""Filter for accesses that are not recorded as usage points."""

from typing import Optional

from racecov.config import SkippedVariables


class VariableSkipper:
    """Skips locations by name or name prefix, and accesses inside listed functions."""

    def __init__(self, skipped: Optional[SkippedVariables] = None):
        self.skipped = skipped or SkippedVariables()

    def should_be_skipped(self, location: str, function_name: str = "") -> bool:
        if location in self.skipped.by_name:
            return True
        if any(location.startswith(prefix) for prefix in self.skipped.by_name_prefix):
            return True
        if function_name:
            if function_name in self.skipped.by_function:
                return True
            if any(function_name.startswith(prefix) for prefix in self.skipped.by_function_prefix):
                return True
        return False
