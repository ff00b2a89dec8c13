"""Unit tests for the command-line runner."""

import json
import logging

import duckdb

from rowgraph.cli import build_parser, main

RULES_YAML = """
transform_rules:
  - name: users_to_person
    rule_type: node
    source: {type: table, value: users}
    target_type: Person
    field_mappings: {id: id, name: name}
"""


def _restore_logging(saved):
    root = logging.getLogger()
    root.handlers, level = saved
    root.setLevel(level)


def test_parser_flags() -> None:
    args = build_parser().parse_args(["--rules", "r.yaml", "--dry-run", "--skip-unresolved"])

    assert args.rules == "r.yaml"
    assert args.dry_run is True
    assert args.skip_unresolved is True
    assert args.duckdb is None
    assert args.metrics_file is None


def test_dry_run_prints_report(tmp_path, capsys) -> None:
    rules = tmp_path / "rules.yaml"
    rules.write_text(RULES_YAML, encoding="utf-8")
    db_path = tmp_path / "source.duckdb"
    conn = duckdb.connect(str(db_path))
    conn.execute("CREATE TABLE users (id INTEGER, name VARCHAR)")
    conn.execute("INSERT INTO users VALUES (1, 'Ada'), (2, 'Bob')")
    conn.close()

    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    try:
        code = main(
            ["--rules", str(rules), "--duckdb", str(db_path), "--dry-run", "--log-level", "ERROR"]
        )
    finally:
        _restore_logging(saved)

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["state"] == "done"
    assert report["nodes"] == 2
    assert report["records_per_rule"] == {"users_to_person": 2}
    assert report["store"]["nodes_written"] == 2
    assert report["metrics"]["counters"]["projection_nodes_added_total"] >= 2
    assert "projection_rule_duration_seconds" in report["metrics"]["histograms"]


def test_metrics_file_written(tmp_path, capsys) -> None:
    rules = tmp_path / "rules.yaml"
    rules.write_text(RULES_YAML, encoding="utf-8")
    metrics_file = tmp_path / "metrics.prom"
    db_path = tmp_path / "source.duckdb"
    conn = duckdb.connect(str(db_path))
    conn.execute("CREATE TABLE users (id INTEGER, name VARCHAR)")
    conn.execute("INSERT INTO users VALUES (1, 'Ada')")
    conn.close()

    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    try:
        code = main(
            [
                "--rules", str(rules),
                "--duckdb", str(db_path),
                "--dry-run",
                "--log-level", "ERROR",
                "--metrics-file", str(metrics_file),
            ]
        )
    finally:
        _restore_logging(saved)

    assert code == 0
    text = metrics_file.read_text(encoding="utf-8")
    assert "# TYPE projection_nodes_added_total counter" in text
    assert 'projection_runs_total{status="done"}' in text
    assert "metrics" in json.loads(capsys.readouterr().out)


def test_missing_rules_file(tmp_path, capsys) -> None:
    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    try:
        code = main(
            ["--rules", str(tmp_path / "missing.yaml"), "--duckdb", ":memory:", "--dry-run"]
        )
    finally:
        _restore_logging(saved)

    assert code == 1
    assert "missing.yaml" in capsys.readouterr().err
