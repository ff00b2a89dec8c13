"""
Transformation engine: projects relational rows into a property graph.

One run loads every source row, buckets rows by table, pre-loads the graph
nodes that graph-bound relationship rules operate over, applies the rules in
declaration order into a fresh :class:`GraphAggregate`, and flushes the
aggregate to the graph sink.

Run states: IDLE -> LOADING -> PROJECTING -> FLUSHING -> DONE, with FAILED
reachable from every step. There are no retries at this level.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..knowledge_graph.graph_aggregate import GraphAggregate
from ..knowledge_graph.normalizer import normalize_properties, normalize_row_maps
from ..knowledge_graph.sink import GraphSink, StoreResult, check_cancelled
from ..storage.source import RowSource
from ..transform.rule_repository import RuleRepository
from ..transform.rules import (
    NodeRecord,
    NodeRule,
    RelationshipRecord,
    RelationshipRule,
    Rule,
    SourceKind,
)
from ..utils import metrics
from ..utils.constants import DEFAULT_NODE_NAME, TABLE_TAG
from ..utils.exceptions import (
    InvalidRecordError,
    InvalidRuleError,
    MissingIdentityError,
    ProjectionCancelledError,
    RowGraphError,
    SinkUnavailableError,
    SourceUnavailableError,
    UnresolvedEndpointError,
)
from ..utils.types import Row

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PROJECTING = "projecting"
    FLUSHING = "flushing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProjectionReport:
    """Summary of one projection run."""

    run_id: str
    state: RunState = RunState.IDLE
    rows_loaded: int = 0
    seed_nodes: int = 0
    records_per_rule: Dict[str, int] = field(default_factory=dict)
    nodes: int = 0
    relationships: int = 0
    relationships_skipped: int = 0
    store_result: Optional[StoreResult] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        if not self.started_at or not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "rows_loaded": self.rows_loaded,
            "seed_nodes": self.seed_nodes,
            "records_per_rule": dict(self.records_per_rule),
            "nodes": self.nodes,
            "relationships": self.relationships,
            "relationships_skipped": self.relationships_skipped,
            "store": asdict(self.store_result) if self.store_result else None,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }


def _seed_properties(label: str, row: Row) -> Row:
    """
    Properties of a pre-loaded node as they go back into the aggregate.

    Sinks fill a missing ``type`` with the label for rule input. That key is
    dropped here so flushing the aggregate never writes it; sinks merge
    properties additively, so a stored ``type`` equal to the label is kept.
    """
    if row.get("type") != label:
        return row
    return {key: value for key, value in row.items() if key != "type"}


class TransformService:
    """
    Orchestrates one projection run over a row source, a graph sink and a
    rule repository.

    A service instance runs one projection at a time. Independent runs can
    execute in parallel on separate service instances (each with its own
    adapters).
    """

    def __init__(
        self,
        source: RowSource,
        sink: GraphSink,
        rule_repository: RuleRepository,
        *,
        fail_on_unresolved: bool = True,
        identity_defaults: bool = True,
        normalizer: Callable[[Mapping[str, Any]], Dict[str, Any]] = normalize_properties,
    ):
        """
        Initialize the engine.

        Args:
            source: Row source adapter
            sink: Graph sink adapter
            rule_repository: Supplies the ordered rule set
            fail_on_unresolved: Abort the run on an unresolvable relationship
                endpoint (default). When False the relationship is logged and skipped.
            identity_defaults: Inject a fresh UUID ``id`` and ``"default_name"``
                ``name`` into node records lacking them (default). When False
                such records raise :class:`MissingIdentityError`.
            normalizer: Property normalizer applied to every node and
                relationship property map before it enters the aggregate
        """
        self.source = source
        self.sink = sink
        self.rule_repository = rule_repository
        self.fail_on_unresolved = fail_on_unresolved
        self.identity_defaults = identity_defaults
        self.normalizer = normalizer

        self.state = RunState.IDLE
        self.last_report: Optional[ProjectionReport] = None
        self._run_lock = threading.Lock()
        self._report: Optional[ProjectionReport] = None
        self._log: logging.LoggerAdapter = logging.LoggerAdapter(logger, {"run_id": "-"})

    # ==================== Public API ====================

    def transform_and_store(
        self, cancellation_event: Optional[threading.Event] = None
    ) -> ProjectionReport:
        """
        Perform one projection run end-to-end.

        Args:
            cancellation_event: Set it to cancel the run at the next rule,
                record or adapter boundary

        Returns:
            Report of the finished run

        Raises:
            RowGraphError: Any taxonomy error aborts the run (state FAILED)
        """
        if not self._run_lock.acquire(blocking=False):
            raise RowGraphError("A projection run is already in progress on this service")

        report = ProjectionReport(run_id=uuid.uuid4().hex[:12], started_at=datetime.now())
        self._report = report
        self.last_report = report
        self._log = logging.LoggerAdapter(logger, {"run_id": report.run_id})

        try:
            self._run(report, cancellation_event)
        except ProjectionCancelledError as e:
            self._finish(report, RunState.FAILED, error=e, status="cancelled")
            raise
        except RowGraphError as e:
            self._finish(report, RunState.FAILED, error=e, status="failed")
            raise
        except Exception as e:
            self._finish(report, RunState.FAILED, error=e, status="failed")
            self._log.exception(f"Unexpected error during projection: {e}")
            raise
        else:
            self._finish(report, RunState.DONE, status="done")
        finally:
            self._report = None
            self._run_lock.release()

        return report

    def update_graph(self, record: Any, aggregate: GraphAggregate) -> None:
        """
        Absorb one rule output record into the aggregate.

        Raises:
            InvalidRecordError: If the record is neither a node nor a relationship
            MissingIdentityError: If identity defaults are off and ``id``/``name`` is missing
            UnresolvedEndpointError: If an endpoint is missing and unresolved endpoints are fatal
        """
        if isinstance(record, RelationshipRecord):
            self._add_relationship(record, aggregate)
        elif isinstance(record, NodeRecord):
            self._add_node(record, aggregate)
        else:
            raise InvalidRecordError(f"Invalid transform result format: {type(record).__name__}")

    # ==================== Run Steps ====================

    def _run(self, report: ProjectionReport, cancellation_event: Optional[threading.Event]) -> None:
        self._set_state(RunState.LOADING)
        rules = self._load_rules()

        check_cancelled(cancellation_event, "before loading rows")
        rows = self._fetch_all(cancellation_event)
        report.rows_loaded = len(rows)
        metrics.ROWS_LOADED_TOTAL.inc(len(rows))
        self._log.info(f"Loaded {len(rows)} records from source")

        table_rows = self._bucket_by_table(rows)
        seed_rows = self._preload_graph_context(rules, cancellation_event)

        aggregate = GraphAggregate()
        for label, label_rows in seed_rows.items():
            for row in label_rows:
                aggregate.add_node(label, self.normalizer(_seed_properties(label, row)))
                report.seed_nodes += 1

        graph_rows: List[Row] = [row for label_rows in seed_rows.values() for row in label_rows]

        self._set_state(RunState.PROJECTING)
        for rule in rules:
            check_cancelled(cancellation_event, f"before rule '{rule.name}'")
            started = time.perf_counter()

            input_rows = self._select_rows(rule, table_rows, graph_rows, cancellation_event)
            produced = 0
            for record in rule.apply_all(input_rows):
                check_cancelled(cancellation_event, f"during rule '{rule.name}'")
                self.update_graph(record, aggregate)
                produced += 1

            report.records_per_rule[rule.name] = produced
            metrics.RULE_DURATION_SECONDS.observe(time.perf_counter() - started)
            self._log.info(f"Rule '{rule.name}' transformed {produced} records")

        report.nodes = aggregate.node_count
        report.relationships = aggregate.relationship_count

        self._set_state(RunState.FLUSHING)
        check_cancelled(cancellation_event, "before storing the graph")
        self._log.info(
            f"Saving graph: {aggregate.node_count} nodes, {aggregate.relationship_count} relationships"
        )
        report.store_result = self._store(aggregate, cancellation_event)
        metrics.GRAPH_NODES.set(aggregate.node_count)

    def _load_rules(self) -> List[Rule]:
        rules = self.rule_repository.get_all_rules()
        for rule in rules:
            if not isinstance(rule, (NodeRule, RelationshipRule)):
                raise InvalidRuleError(f"Unsupported rule type: {type(rule).__name__}")
            rule.validate()
        self._log.info(f"Loaded {len(rules)} transform rules")
        return rules

    def _fetch_all(self, cancellation_event: Optional[threading.Event]) -> List[Row]:
        try:
            return self.source.fetch_all(cancellation_event=cancellation_event)
        except RowGraphError:
            raise
        except Exception as e:
            raise SourceUnavailableError(f"Source failed to fetch rows: {e}") from e

    def _execute_query(self, query: str, cancellation_event: Optional[threading.Event]) -> List[Row]:
        try:
            return self.source.execute_query(query, cancellation_event=cancellation_event)
        except RowGraphError:
            raise
        except Exception as e:
            raise SourceUnavailableError(f"Error executing SQL query: {e}") from e

    def _bucket_by_table(self, rows: List[Row]) -> Dict[str, List[Row]]:
        table_rows: Dict[str, List[Row]] = {}
        untagged = 0
        for row in rows:
            table = row.get(TABLE_TAG)
            if not isinstance(table, str):
                untagged += 1
                continue
            table_rows.setdefault(table, []).append(normalize_row_maps(row))
        if untagged:
            self._log.warning(f"Ignored {untagged} rows without a {TABLE_TAG} tag")
        return table_rows

    def _preload_graph_context(
        self, rules: List[Rule], cancellation_event: Optional[threading.Event]
    ) -> Dict[str, List[Row]]:
        labels: List[str] = []
        for rule in rules:
            if isinstance(rule, RelationshipRule) and rule.source.kind is SourceKind.GRAPH:
                for label in rule.endpoint_labels():
                    if label not in labels:
                        labels.append(label)

        seed_rows: Dict[str, List[Row]] = {}
        for label in labels:
            check_cancelled(cancellation_event, f"before fetching {label} nodes")
            try:
                seed_rows[label] = list(self.sink.fetch_nodes(label))
            except RowGraphError:
                raise
            except Exception as e:
                raise SinkUnavailableError(f"Error loading {label} nodes from graph: {e}") from e
            self._log.info(f"Pre-loaded {len(seed_rows[label])} {label} nodes from graph")
        return seed_rows

    def _select_rows(
        self,
        rule: Rule,
        table_rows: Dict[str, List[Row]],
        graph_rows: List[Row],
        cancellation_event: Optional[threading.Event],
    ) -> List[Row]:
        kind = rule.source.kind
        if kind is SourceKind.GRAPH and isinstance(rule, RelationshipRule):
            self._log.info(f"Processing relationship rule '{rule.name}' over {len(graph_rows)} graph nodes")
            return graph_rows
        if kind is SourceKind.QUERY:
            check_cancelled(cancellation_event, f"before query of rule '{rule.name}'")
            return self._execute_query(rule.source.value, cancellation_event)
        if kind is SourceKind.TABLE:
            self._log.info(f"Applying rule '{rule.name}' to table: {rule.source.value}")
            return [normalize_row_maps(row) for row in table_rows.get(rule.source.value, [])]
        raise InvalidRuleError(f"Rule '{rule.name}' has unsupported source {kind}")

    def _store(self, aggregate: GraphAggregate, cancellation_event: Optional[threading.Event]) -> StoreResult:
        try:
            result = self.sink.store_graph(aggregate, cancellation_event=cancellation_event)
        except RowGraphError:
            raise
        except Exception as e:
            raise SinkUnavailableError(f"Error storing graph: {e}") from e
        if result is None:
            result = StoreResult(nodes_written=aggregate.node_count, relationships_written=aggregate.relationship_count)
        if result.relationships_skipped:
            metrics.RELATIONSHIPS_SKIPPED_TOTAL.inc(result.relationships_skipped)
        return result

    # ==================== Record Handling ====================

    def _add_node(self, record: NodeRecord, aggregate: GraphAggregate) -> None:
        properties = dict(record.properties)

        if properties.get("id") in (None, ""):
            if not self.identity_defaults:
                raise MissingIdentityError(f"{record.label} record has no 'id': {record.properties}")
            properties["id"] = str(uuid.uuid4())
        if "name" not in properties:
            if not self.identity_defaults:
                raise MissingIdentityError(f"{record.label} record has no 'name': {record.properties}")
            properties["name"] = DEFAULT_NODE_NAME

        aggregate.add_node(record.label, self.normalizer(properties))
        metrics.NODES_ADDED_TOTAL.inc()

    def _add_relationship(self, record: RelationshipRecord, aggregate: GraphAggregate) -> None:
        try:
            aggregate.add_relationship(
                record.type,
                record.direction,
                record.source.label,
                record.source.key,
                record.source.match_field,
                record.target.label,
                record.target.key,
                record.target.match_field,
                self.normalizer(record.properties),
            )
        except UnresolvedEndpointError as e:
            if self.fail_on_unresolved:
                raise UnresolvedEndpointError(
                    e.relationship_type, e.side, e.label, e.field, e.key, record=record
                ) from None
            self._log.warning(f"Skipping relationship: {e}")
            metrics.RELATIONSHIPS_SKIPPED_TOTAL.inc()
            if self._report is not None:
                self._report.relationships_skipped += 1
            return
        metrics.RELATIONSHIPS_ADDED_TOTAL.inc()

    # ==================== State ====================

    def _set_state(self, state: RunState) -> None:
        self.state = state
        if self._report is not None:
            self._report.state = state
        self._log.debug(f"Run state -> {state.value}")

    def _finish(
        self,
        report: ProjectionReport,
        state: RunState,
        status: str,
        error: Optional[BaseException] = None,
    ) -> None:
        self._set_state(state)
        report.finished_at = datetime.now()
        metrics.run_counter(status).inc()
        if error is not None:
            report.error = str(error)
            self._log.error(f"Projection run {status}: {error}")
        else:
            self._log.info(
                f"Projection run done in {report.duration_seconds:.2f}s: "
                f"{report.nodes} nodes, {report.relationships} relationships"
            )
