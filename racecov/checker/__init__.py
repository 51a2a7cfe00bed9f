"""Usage-point analysis: trackers, coverage store, race query and engine."""

from racecov.checker.thread_tracker import ThreadHierarchyTracker
from racecov.checker.lockset_tracker import LockSetTracker
from racecov.checker.coverage import covers, UsagePointSet, FactStore
from racecov.checker.race_query import RaceQuery
from racecov.checker.variable_skipper import VariableSkipper
from racecov.checker.usage_analyzer import UsageAnalyzer, ReachabilityPredicate, AnalysisStatistics
from racecov.checker.report_generator import AnalysisReport, ReportGenerator


__all__ = [
    'ThreadHierarchyTracker',
    'LockSetTracker',
    'covers',
    'UsagePointSet',
    'FactStore',
    'RaceQuery',
    'VariableSkipper',
    'UsageAnalyzer',
    'ReachabilityPredicate',
    'AnalysisStatistics',
    'AnalysisReport',
    'ReportGenerator',
]
