"""racecov: thread-modular data race detection over usage points."""

__version__ = "1.0.0"

from racecov.core.models import UsagePoint, ThreadStateSet, LockSet, RaceCandidate
from racecov.checker.usage_analyzer import UsageAnalyzer
from racecov.ir.control_flow_graph import ProgramCFG

__all__ = ['UsagePoint', 'ThreadStateSet', 'LockSet', 'RaceCandidate', 'UsageAnalyzer', 'ProgramCFG']
