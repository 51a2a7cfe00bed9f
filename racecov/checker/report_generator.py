"""Report generation and export for usage-point analysis results."""

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List

from racecov.core.models import RaceCandidate, UsagePoint
from racecov.utils import make_json_serializable


@dataclass
class AnalysisReport:
    """Result of one analysis run."""
    program: str
    total_race_candidates: int
    races_by_severity: Dict[str, int]
    races_by_location: Dict[str, int]
    race_candidates: List[RaceCandidate]
    usages: Dict[str, List[UsagePoint]]
    threads: Dict[str, Dict[str, Any]]
    metrics: Dict[str, Any]
    analysis_time: float


class ReportGenerator:
    """Handles report generation and export functionality."""

    def generate_report(self, program: str, results: Dict[str, Any]) -> AnalysisReport:
        """Build a report from ``UsageAnalyzer.get_analysis_results()``."""
        races = results['race_candidates']
        return AnalysisReport(
            program=program,
            total_race_candidates=len(races),
            races_by_severity=dict(Counter(r.severity for r in races)),
            races_by_location=dict(Counter(r.location for r in races)),
            race_candidates=races,
            usages=results['usages'],
            threads=results['threads'],
            metrics=results['metrics'],
            analysis_time=results['metrics'].get('analysis_time', 0.0),
        )

    def export_json_report(self, report: AnalysisReport, include_usages: bool = True) -> Dict[str, Any]:
        """Export report as JSON-serializable dictionary."""
        data = {
            'summary': {
                'program': report.program,
                'total_race_candidates': report.total_race_candidates,
                'races_by_severity': report.races_by_severity,
                'races_by_location': report.races_by_location,
                'analysis_time': report.analysis_time,
            },
            'race_candidates': [race.to_dict() for race in report.race_candidates],
            'threads': make_json_serializable({
                thread_id: {
                    'function': info['function'],
                    'creator': info['creator'],
                    'entry_state': info['entry_state'].render() if info['entry_state'] is not None else None,
                }
                for thread_id, info in report.threads.items()
            }),
            'metrics': make_json_serializable(report.metrics),
        }
        if include_usages:
            data['usages'] = {
                location: [point.to_dict() for point in points]
                for location, points in report.usages.items()
            }
        return data

    def generate_summary_report(self, report: AnalysisReport, show_usages: bool = False) -> str:
        """Generate a human-readable summary report."""
        metrics = report.metrics
        lines = [
            "Usage Point Analysis Results:",
            f"  Program: {report.program}",
            f"  Threads: {metrics.get('num_threads', len(report.threads))}",
            f"  Locations: {metrics.get('locations', len(report.usages))}",
            f"  Usage points: {metrics.get('retained', 0)} retained, "
            f"{metrics.get('covered', 0)} covered, {metrics.get('inserted', 0)} inserted",
            f"  Race candidates: {report.total_race_candidates}",
            f"  Analysis time: {report.analysis_time:.2f} seconds",
        ]

        if show_usages and report.usages:
            lines.append("")
            lines.append("Usage Points:")
            for location, points in sorted(report.usages.items()):
                lines.append(f"  {location}:")
                for point in points:
                    site = f" at {point.site}" if point.site else ""
                    lines.append(f"    {point.render()}{site}")

        if report.race_candidates:
            lines.append("")
            lines.append("Race Candidates Found:")
            for i, race in enumerate(report.race_candidates, 1):
                lines.append(f"  {i}. {race.location} ({race.severity})")
                lines.append(f"     {race.first.render()}  {_sites(race.first_sites)}")
                lines.append(f"     {race.second.render()}  {_sites(race.second_sites)}")
                lines.append(f"     Description: {race.description}")
        return "\n".join(lines) + "\n"


def _sites(sites) -> str:
    if not sites:
        return ""
    return "[" + ", ".join(str(s) for s in sites) + "]"
