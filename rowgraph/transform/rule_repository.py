"""
Rule repositories.

The engine asks a repository for the ordered rule set once per run. Rule-set
documents are validated with pydantic and converted into the frozen domain
rules of :mod:`rowgraph.transform.rules`.

Document format (YAML or an equivalent Python structure)::

    transform_rules:
      - name: users_to_person
        rule_type: node
        source: {type: table, value: users}
        target_type: Person
        field_mappings: {id: id, name: name, email: email}
      - name: person_works_in
        rule_type: relationship
        source: {type: table, value: user_departments}
        relationship_type: WORKS_IN
        direction: outgoing
        source_node: {type: Person, key: user_id, target_field: id}
        target_node: {type: Department, key: department_id, target_field: id}
        properties: {role: role, start_date: start_date}
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..utils.exceptions import ConfigurationError, InvalidRuleError
from ..utils.validators import validate_file_path, validate_identifier
from .rules import (
    Direction,
    EndpointMapping,
    NodeRule,
    RelationshipRule,
    Rule,
    RuleSource,
    RuleType,
    SourceKind,
)

logger = logging.getLogger(__name__)


# ==================== Document Schema ====================


class SourceConfig(BaseModel):
    """``source`` entry of a rule."""

    type: str = "table"
    value: Optional[str] = None


class EndpointConfig(BaseModel):
    """``source_node`` / ``target_node`` entry of a relationship rule."""

    type: str
    key: str
    target_field: str = "id"


class RuleConfig(BaseModel):
    """One entry of the ``transform_rules`` list."""

    model_config = ConfigDict(extra="ignore")

    name: str
    rule_type: str
    source: Optional[SourceConfig] = None
    source_table: Optional[str] = None
    source_sql: Optional[str] = None
    target_type: Optional[str] = None
    relationship_type: Optional[str] = None
    direction: Optional[str] = None
    field_mappings: Dict[str, str] = Field(default_factory=dict)
    source_node: Optional[EndpointConfig] = None
    target_node: Optional[EndpointConfig] = None
    properties: Dict[str, str] = Field(default_factory=dict)
    priority: int = 0


def _rule_source(config: RuleConfig, rule_type: RuleType) -> RuleSource:
    if config.source is not None:
        try:
            kind = SourceKind(config.source.type.strip().lower())
        except ValueError:
            raise InvalidRuleError(
                f"Rule '{config.name}' has unknown source type '{config.source.type}'"
            )
        if kind is SourceKind.GRAPH:
            return RuleSource.graph()
        if not config.source.value:
            raise InvalidRuleError(f"Rule '{config.name}' source has no value")
        return RuleSource(kind, config.source.value)

    if config.source_sql:
        return RuleSource.query(config.source_sql)
    if config.source_table:
        return RuleSource.table(config.source_table)
    if rule_type is RuleType.RELATIONSHIP:
        return RuleSource.graph()
    raise InvalidRuleError(f"Node rule '{config.name}' has no source")


def _endpoint(config: Optional[EndpointConfig]) -> Optional[EndpointMapping]:
    if config is None or not config.type:
        return None
    return EndpointMapping(
        label=validate_identifier(config.type, "endpoint type"),
        key=config.key,
        match_field=config.target_field or "id",
    )


def build_rule(config: RuleConfig) -> Rule:
    """
    Convert one validated rule entry into a domain rule.

    Raises:
        InvalidRuleError: For unknown rule types, sources or missing target types
    """
    try:
        rule_type = RuleType(config.rule_type.strip().lower())
    except ValueError:
        raise InvalidRuleError(
            f"Rule '{config.name}' has unsupported rule type '{config.rule_type}'"
        )

    source = _rule_source(config, rule_type)

    if rule_type is RuleType.NODE:
        return NodeRule(
            name=config.name,
            target_type=validate_identifier(config.target_type, f"target_type of '{config.name}'"),
            source=source,
            field_mappings=dict(config.field_mappings),
            priority=config.priority,
        )

    rel_type = config.relationship_type or config.target_type
    return RelationshipRule(
        name=config.name,
        target_type=validate_identifier(rel_type, f"relationship type of '{config.name}'"),
        source=source,
        source_node=_endpoint(config.source_node),
        target_node=_endpoint(config.target_node),
        direction=Direction.parse(config.direction),
        properties=dict(config.properties),
        field_mappings=dict(config.field_mappings),
        priority=config.priority,
    )


def parse_rules(document: Any) -> List[Rule]:
    """
    Parse a rule-set document into domain rules, keeping declaration order.

    Args:
        document: Mapping with a ``transform_rules`` list, or the bare list

    Raises:
        InvalidRuleError: If the document or any entry is invalid
    """
    if document is None:
        return []
    if isinstance(document, dict):
        entries = document.get("transform_rules") or []
    else:
        entries = document
    if not isinstance(entries, list):
        raise InvalidRuleError("transform_rules must be a list of rule entries")

    rules: List[Rule] = []
    for position, entry in enumerate(entries):
        try:
            config = RuleConfig.model_validate(entry)
        except ValidationError as e:
            raise InvalidRuleError(f"Rule #{position} is invalid: {e}") from e
        rules.append(build_rule(config))

    return rules


# ==================== Repositories ====================


class RuleRepository(ABC):
    """Supplies the ordered rule set for a projection run."""

    @abstractmethod
    def get_all_rules(self) -> List[Rule]:
        """Return every rule in declaration order."""
        raise NotImplementedError


class InMemoryRuleRepository(RuleRepository):
    """Rule repository backed by a Python list."""

    def __init__(self, rules: Optional[List[Rule]] = None):
        self._rules: List[Rule] = list(rules or [])

    def get_all_rules(self) -> List[Rule]:
        return list(self._rules)

    def save_rule(self, rule: Rule) -> None:
        self._rules.append(rule)

    def delete_rule(self, name: str) -> None:
        del self._rules[self._position(name)]

    def update_rule_priority(self, name: str, priority: int) -> None:
        """Replace the named rule with a copy carrying the new priority."""
        position = self._position(name)
        self._rules[position] = replace(self._rules[position], priority=priority)

    def _position(self, name: str) -> int:
        for position, rule in enumerate(self._rules):
            if rule.name == name:
                return position
        raise InvalidRuleError(f"Rule with name {name} not found")


class ConfigRuleRepository(RuleRepository):
    """
    Rule repository loading a rule-set document.

    The document is parsed on first use and cached; call :meth:`reload`
    to parse it again.
    """

    def __init__(
        self,
        document: Union[Dict[str, Any], List[Any], None] = None,
        *,
        text: Optional[str] = None,
        path: Optional[str] = None,
    ):
        """
        Initialize the repository from exactly one of a document, YAML text
        or a YAML file path.

        Args:
            document: Already-loaded rule-set document
            text: YAML text of the rule-set document
            path: Path of a YAML rule-set document
        """
        given = [arg for arg in (document, text, path) if arg is not None]
        if len(given) != 1:
            raise ConfigurationError(
                "ConfigRuleRepository needs exactly one of document, text or path"
            )
        self._document = document
        self._text = text
        self._path = path
        self._rules: Optional[List[Rule]] = None

    @classmethod
    def from_file(cls, path: str) -> "ConfigRuleRepository":
        return cls(path=path)

    @classmethod
    def from_yaml(cls, text: str) -> "ConfigRuleRepository":
        return cls(text=text)

    def get_all_rules(self) -> List[Rule]:
        if self._rules is None:
            self._rules = parse_rules(self._load_document())
            logger.info(f"Loaded {len(self._rules)} transform rules")
            for rule in self._rules:
                logger.debug(f"Rule '{rule.name}': {rule}")
        return list(self._rules)

    def reload(self) -> List[Rule]:
        self._rules = None
        return self.get_all_rules()

    def _load_document(self) -> Any:
        if self._document is not None:
            return self._document

        text = self._text
        if self._path is not None:
            path = validate_file_path(self._path)
            logger.info(f"Loading rules from {path}")
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(f"Could not read rule file {path}: {e}") from e

        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Rule-set document is not valid YAML: {e}") from e
