from __future__ import annotations

import argparse
import logging
from pathlib import Path

from wiki_pipeline.batch.orchestrator import BatchGateError, validate_result
from wiki_pipeline.cli.runner import run_entries, write_jsonl
from wiki_pipeline.config import BatchConfig, get_log_level, get_name_mappings_path
from wiki_pipeline.parsing.names import NameResolver
from wiki_pipeline.parsing.registry import RECORD_KINDS


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _batch_config(args: argparse.Namespace) -> BatchConfig:
    """Environment defaults, overridden by any flag given on the command line."""
    base = BatchConfig.from_env()
    return BatchConfig(
        batch_size=args.batch_size if args.batch_size is not None else base.batch_size,
        delay_ms=args.delay_ms if args.delay_ms is not None else base.delay_ms,
        max_retries=args.max_retries if args.max_retries is not None else base.max_retries,
        retry_delay_ms=args.retry_delay_ms if args.retry_delay_ms is not None else base.retry_delay_ms,
        min_success_rate=args.min_success_rate if args.min_success_rate is not None else base.min_success_rate,
    )


def main(argv: list[str] | None = None) -> int:
    """
    A CLI for extracting wiki records in batches.

    The `cmd` options are:
    ## run:
    Fetch, extract and assemble every entry of an entry list.
    - `--entries` as the path to the entry list (CSV, JSONL or markdown link list),
    - `--kind` as the record profile to assemble.

    A results summary will print in the terminal upon completion. Exits `1`
    when the success rate is below `--min-success-rate`.

    ### Example run usage:
    - `pipeline run --entries data/agents.csv --kind agents --out out/agents.jsonl`
    - `pipeline run --entries data/agents.csv --kind agents --include anby --include nicole`

    ## names:
    Name table utilities.
    - `check` prints whether the name table is usable and, if not, why.
    """
    p = argparse.ArgumentParser(prog="pipeline")
    p.add_argument("--log-level", default=None, help="Logging level (default: $WIKI_PIPELINE_LOG_LEVEL or INFO).")
    sub = p.add_subparsers(dest="cmd", required=True)

    # run cmd
    run = sub.add_parser("run", help="Run a batch over an entry list (with failure records).")
    run.add_argument("--entries", required=True, help="Path to entry list (CSV, JSONL or markdown).")
    run.add_argument("--kind", required=True, choices=list(RECORD_KINDS))
    run.add_argument("--names", default=None, help="Name mapping JSON (default: $WIKI_NAME_MAPPINGS).")
    run.add_argument("--list", default=None, help="Saved wiki list JSON for attack type fallback (default: $WIKI_LIST_DOCUMENT).")
    run.add_argument("--out", default=None, help="Write processed records here as JSON lines.")
    run.add_argument("--failures-out", default=None, help="Write failure records here as JSON lines.")
    run.add_argument("--include", action="append", default=[], help="Only process this id (repeatable).")
    run.add_argument("--exclude", action="append", default=[], help="Skip this id (repeatable).")
    run.add_argument("--limit", type=int, default=None, help="Process at most N entries.")
    run.add_argument("--no-retry", action="store_true", help="Skip the retry pass over failed fetches.")
    run.add_argument("--report", action="store_true", help="Print the failure/default breakdown.")
    run.add_argument("--batch-size", type=int, default=None)
    run.add_argument("--delay-ms", type=int, default=None)
    run.add_argument("--max-retries", type=int, default=None)
    run.add_argument("--retry-delay-ms", type=int, default=None)
    run.add_argument("--min-success-rate", type=float, default=None)

    # names cmd
    names = sub.add_parser("names", help="Name table utilities.")
    names_sub = names.add_subparsers(dest="names_cmd", required=True)
    names_check = names_sub.add_parser("check", help="Check the name table file.")
    names_check.add_argument("--names", default=None, help="Name mapping JSON (default: $WIKI_NAME_MAPPINGS).")

    args = p.parse_args(argv)
    _configure_logging(args.log_level or get_log_level())

    if args.cmd == "run":
        try:
            config = _batch_config(args)
        except ValueError as e:
            p.error(str(e))

        result, summary = run_entries(
            input_path=Path(args.entries),
            kind=args.kind,
            names_path=Path(args.names) if args.names else get_name_mappings_path(),
            config=config,
            list_path=Path(args.list) if args.list else None,
            include=args.include,
            exclude=args.exclude,
            limit=args.limit,
            retry=not args.no_retry,
        )

        if args.out:
            write_jsonl(Path(args.out), (r.to_mapping() for r in result.successful))
        if args.failures_out:
            write_jsonl(Path(args.failures_out), (f.to_mapping() for f in result.failed))

        if args.report:
            print("\n".join(summary.render_report()))
        else:
            print(summary.render_one_line())

        try:
            validate_result(result, config.min_success_rate)
        except BatchGateError as e:
            print(f"FAILED: {e}")
            return 1
        return 0

    if args.cmd == "names" and args.names_cmd == "check":
        path = Path(args.names) if args.names else get_name_mappings_path()
        resolver = NameResolver(path)
        availability = resolver.check_availability()
        if availability.available:
            stats = resolver.mapping_stats()
            print(f"{path}: ok ({stats['total']} mappings)")
            return 0
        report = resolver.graceful_degradation("*")
        print(f"{path}: {availability.problem.value if availability.problem else 'unavailable'}: {report.reason} ({report.suggestion})")
        return 1

    return 2
