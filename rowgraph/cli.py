"""
Command-line runner for a projection run.

    rowgraph --rules config/rules.yaml --duckdb data/source.duckdb --dry-run

Settings come from the environment (and ``.env``); flags override them. The
report is printed as JSON together with a summary of the projection metrics.
"""

import argparse
import json
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .config.settings import Settings
from .services.bootstrap import create_transform_service
from .utils.exceptions import RowGraphError
from .utils.metrics import get_registry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rowgraph", description="Project relational rows into a property graph."
    )
    parser.add_argument("--rules", help="Rule-set YAML file (default: PROJECTION_RULES_PATH)")
    parser.add_argument("--duckdb", help="DuckDB database path (default: DUCKDB_PATH)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Project into memory instead of writing to Neo4j",
    )
    parser.add_argument(
        "--skip-unresolved",
        action="store_true",
        help="Log and skip relationships with unresolved endpoints instead of failing",
    )
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL or INFO)")
    parser.add_argument(
        "--metrics-file",
        help="Also write the run metrics to this file in Prometheus text format",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    settings = Settings()
    if args.rules:
        settings.projection.rules_path = args.rules
    if args.duckdb:
        settings.duckdb.path = args.duckdb
    if args.dry_run:
        settings.projection.dry_run = True
    if args.skip_unresolved:
        settings.projection.fail_on_unresolved = False
    if args.log_level:
        settings.log_level = args.log_level

    try:
        service = create_transform_service(settings, configure_logging=True)
    except RowGraphError as e:
        print(f"[!] Error: {e}", file=sys.stderr)
        return 1

    try:
        report = service.transform_and_store()
    except RowGraphError as e:
        print(f"[!] Projection failed: {e}", file=sys.stderr)
        return 1
    finally:
        service.source.close()
        service.sink.close()

    registry = get_registry()
    if args.metrics_file:
        with open(args.metrics_file, "w", encoding="utf-8") as f:
            f.write(registry.export_prometheus())

    output = report.to_dict()
    output["metrics"] = registry.get_summary()
    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
