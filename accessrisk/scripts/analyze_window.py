#!/usr/bin/env python3
"""
AccessRisk Window Analysis
============================
Scores one window of access-log events from a file and prints the ranked
risk table.

Usage:
  accessrisk-analyze logs/2026-10-19T14.jsonl
  accessrisk-analyze logs/window.csv --alpha 0.97 --output-format csv --limit 20
  accessrisk-analyze logs/window.jsonl --review-url http://identity:8300 --review-threshold 0.6

Input:
  JSON lines (one object per line) or CSV with a header row; format is taken
  from the file extension unless --format is given.

Defaults for every analysis option come from the ACCESSRISK_* environment
variables (see accessrisk.services.shared.config); flags override them.

Exit codes:
  0  analysis completed
  1  input could not be read
  2  configuration error (nothing was scored)
"""

import argparse
import io
import json
import logging
import sys
from typing import Optional

import structlog

from accessrisk.services.behavioural.pipeline import analyze_access_logs
from accessrisk.services.behavioural.risk_scoring import risk_scores_to_frame
from accessrisk.services.ingest.normalizer import load_events
from accessrisk.services.review.dispatcher import (
    REVIEW_RISK_THRESHOLD, REVIEW_SERVICE_URL, ReviewDispatcher, select_review_candidates,
)
from accessrisk.services.shared.config import AnalysisConfig
from accessrisk.services.shared.errors import ConfigurationError
from accessrisk.services.shared.models import AnalysisResult, Diagnostics, RISK_TABLE_COLUMNS


def configure_logging(verbose: bool = False) -> None:
    """Pipeline logs go to stderr so stdout carries only the risk table."""
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, stream=sys.stderr)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="accessrisk-analyze",
        description="Rank users for security review from one window of access-log events",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("input", help="Path to a JSON lines or CSV access-log file")
    parser.add_argument("--format", choices=("auto", "jsonl", "csv"), default="auto",
                        help="Input format (default: from file extension)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline progress to stderr")

    analysis = parser.add_argument_group("analysis options")
    analysis.add_argument("--alpha", type=float, help="Outlier significance level in (0, 1)")
    analysis.add_argument("--anomaly-weight", type=float)
    analysis.add_argument("--failure-weight", type=float)
    analysis.add_argument("--resource-weight", type=float)
    analysis.add_argument("--min-buckets", type=int, dest="min_buckets_for_detection",
                          help="Minimum buckets per user before anomaly detection runs")
    analysis.add_argument("--top-k-resources", type=int)
    analysis.add_argument("--timezone", help="IANA timezone used for hour-of-day (e.g. Europe/Berlin)")
    analysis.add_argument("--seasonal-period", type=int)
    analysis.add_argument("--iqr-multiplier", type=float, help="Fixed IQR fence multiplier (replaces the alpha policy)")
    analysis.add_argument("--workers", type=int, dest="max_workers", help="Threads for per-user detection")

    output = parser.add_argument_group("output")
    output.add_argument("--output", default="-", help="Output file (default: stdout)")
    output.add_argument("--output-format", choices=("json", "csv"), default="json")
    output.add_argument("--limit", type=_positive_int, help="Only emit the top N rows")

    handoff = parser.add_argument_group("review handoff")
    handoff.add_argument("--review-url", default=REVIEW_SERVICE_URL,
                         help="Identity service base URL; when set, top users are submitted for review")
    handoff.add_argument("--review-threshold", type=float, default=REVIEW_RISK_THRESHOLD)
    return parser


def config_from_args(args: argparse.Namespace) -> AnalysisConfig:
    return AnalysisConfig.from_env().with_overrides(
        alpha=args.alpha,
        anomaly_weight=args.anomaly_weight,
        failure_weight=args.failure_weight,
        resource_weight=args.resource_weight,
        min_buckets_for_detection=args.min_buckets_for_detection,
        top_k_resources=args.top_k_resources,
        timezone=args.timezone,
        seasonal_period=args.seasonal_period,
        iqr_multiplier=args.iqr_multiplier,
        max_workers=args.max_workers,
    )


def render(result: AnalysisResult, fmt: str, limit: Optional[int] = None) -> str:
    rows = result.risk_scores[:limit] if limit is not None else result.risk_scores
    if fmt == "csv":
        buf = io.StringIO()
        risk_scores_to_frame(rows).to_csv(buf, index=False, lineterminator="\n")
        return buf.getvalue()
    records = [{col: row.as_dict()[col] for col in RISK_TABLE_COLUMNS} for row in rows]
    return json.dumps(records, indent=2) + "\n"


def _print_diagnostics(diag: Diagnostics) -> None:
    print(
        f"events: {diag.events_received} received, {diag.events_accepted} accepted, "
        f"{diag.dropped_unparseable_timestamp} bad timestamp, {diag.dropped_missing_field} missing field, "
        f"{diag.records_unreadable} unreadable",
        file=sys.stderr,
    )
    print(
        f"users: {len(diag.users_evaluated)} evaluated, {len(diag.users_not_evaluated)} not evaluated, "
        f"{len(diag.users_failed)} failed",
        file=sys.stderr,
    )
    if diag.pattern_defaults:
        print(f"pattern defaults used: {len(diag.pattern_defaults)}", file=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        cfg = config_from_args(args)
    except ConfigurationError as exc:
        print(f"ERROR: configuration error: {exc}", file=sys.stderr)
        return 2

    diag = Diagnostics()
    try:
        events = load_events(args.input, args.format, diag)
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        print(f"ERROR: cannot read {args.input}: {exc}", file=sys.stderr)
        return 1

    result = analyze_access_logs(events, cfg, diag)
    text = render(result, args.output_format, args.limit)

    if args.output == "-":
        sys.stdout.write(text)
    else:
        with open(args.output, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)

    _print_diagnostics(result.diagnostics)

    if args.review_url:
        candidates = select_review_candidates(result.risk_scores, threshold=args.review_threshold)
        if candidates:
            with ReviewDispatcher(args.review_url) as dispatcher:
                submitted = dispatcher.submit(candidates, window_label=args.input)
            print(f"review requests: {len(submitted)}/{len(candidates)} accepted", file=sys.stderr)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
