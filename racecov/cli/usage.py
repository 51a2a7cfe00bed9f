"""CLI commands for usage-point analysis and annotation checking."""

import json
from pathlib import Path

from racecov.checker.report_generator import ReportGenerator
from racecov.checker.usage_analyzer import UsageAnalyzer
from racecov.config import load_analysis_config
from racecov.core.annotations import load_annotations
from racecov.ir.control_flow_graph import ProgramCFG
from racecov.monitoring import LogLevel


def _build_analyzer(args, logger) -> UsageAnalyzer:
    config = load_analysis_config(getattr(args, 'config', None))
    if getattr(args, 'widening_threshold', None) is not None:
        config.widening_threshold = args.widening_threshold
    if getattr(args, 'strict_empty_lockset_cover', False):
        config.strict_empty_lockset_cover = True
    if getattr(args, 'no_self_parallel_pairs', False):
        config.report_self_parallel_pairs = False
    program = ProgramCFG.from_json(args.program)
    logger.log(f"Loaded {args.program}: {program.get_metrics()['num_functions']} functions", level=LogLevel.DEBUG)
    return UsageAnalyzer(program, config=config, logger=logger)


def analyze_usages(args, logger) -> int:
    """Run the usage-point analysis on a program description."""
    if not Path(args.program).exists():
        logger.log(f"Error: File {args.program} does not exist", level=LogLevel.ERROR)
        return 1

    analyzer = _build_analyzer(args, logger)
    analyzer.analyze()
    for location in args.false_unsafe or []:
        analyzer.mark_false_unsafe(location)

    generator = ReportGenerator()
    report = generator.generate_report(args.program, analyzer.get_analysis_results())

    if args.format == 'json':
        output = json.dumps(generator.export_json_report(report, include_usages=args.show_usages), indent=2)
    else:
        output = generator.generate_summary_report(report, show_usages=args.show_usages)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(output)
        print(f"Results written to {args.output}")
    else:
        print(output)

    return 2 if report.total_race_candidates and args.fail_on_race else 0


def list_annotations(args, logger) -> int:
    """List the usage points annotated in C samples, optionally checking them against a program model."""
    annotations = []
    for file_path in args.files:
        if not Path(file_path).exists():
            print(f"Warning: File {file_path} does not exist, skipping...")
            continue
        annotations.extend(load_annotations(file_path))

    computed = None
    if args.program:
        analyzer = _build_analyzer(args, logger)
        analyzer.analyze()
        computed = set(analyzer.store.history)

    mismatches = 0
    for annotation in annotations:
        line = f"{annotation.expected.site}: {annotation.location or '?'} {annotation.text}"
        if computed is not None:
            found = annotation.location is not None and annotation.expected in computed
            if not found:
                mismatches += 1
            line += "  ok" if found else "  MISSING"
        print(line)

    print(f"\n{len(annotations)} annotated usage point(s)"
          + (f", {mismatches} not produced by the analysis" if computed is not None else ""))
    return 1 if mismatches else 0


def add_analyze_parser(subparsers) -> None:
    """Add the analyze subcommand to CLI."""
    analyze_parser = subparsers.add_parser(
        'analyze',
        help='Compute usage points and race candidates for a program description'
    )
    analyze_parser.add_argument('program', help='JSON program description (per-thread CFGs)')
    analyze_parser.add_argument('-o', '--output', help='Output file for the results')
    analyze_parser.add_argument('-f', '--format', choices=['text', 'json'], default='text', help='Output format')
    analyze_parser.add_argument('--show-usages', action='store_true', help='Include retained usage points')
    analyze_parser.add_argument('--config', help='JSON file overriding the analysis defaults')
    analyze_parser.add_argument('--widening-threshold', type=int, help='Loop-header visits before widening')
    analyze_parser.add_argument('--strict-empty-lockset-cover', action='store_true',
                                help='An empty lock set only covers an empty lock set')
    analyze_parser.add_argument('--no-self-parallel-pairs', action='store_true',
                                help='Do not report writes of self-parallel threads against themselves')
    analyze_parser.add_argument('--false-unsafe', action='append', metavar='LOCATION',
                                help='Exclude a location already proven race-free')
    analyze_parser.add_argument('--fail-on-race', action='store_true',
                                help='Exit with status 2 if race candidates are found')
    analyze_parser.set_defaults(func=analyze_usages)


def add_annotations_parser(subparsers) -> None:
    """Add the annotations subcommand to CLI."""
    annotations_parser = subparsers.add_parser(
        'annotations',
        help='List usagePoint annotations found in C samples'
    )
    annotations_parser.add_argument('files', nargs='+', help='Annotated C source files')
    annotations_parser.add_argument('--program', help='Program description to check the annotations against')
    annotations_parser.add_argument('--config', help='JSON file overriding the analysis defaults')
    annotations_parser.set_defaults(func=list_annotations)
