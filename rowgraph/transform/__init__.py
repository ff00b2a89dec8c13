"""
Projection rules: the rule model and the repositories that supply rule sets.
"""

from __future__ import annotations

from .rule_repository import (
    ConfigRuleRepository,
    InMemoryRuleRepository,
    RuleRepository,
    parse_rules,
)
from .rules import (
    Direction,
    EndpointMapping,
    EndpointRef,
    NodeRecord,
    NodeRule,
    Record,
    RelationshipRecord,
    RelationshipRule,
    Rule,
    RuleSource,
    RuleType,
    SourceKind,
)

__all__ = [
    "ConfigRuleRepository",
    "Direction",
    "EndpointMapping",
    "EndpointRef",
    "InMemoryRuleRepository",
    "NodeRecord",
    "NodeRule",
    "Record",
    "RelationshipRecord",
    "RelationshipRule",
    "Rule",
    "RuleRepository",
    "RuleSource",
    "RuleType",
    "SourceKind",
    "parse_rules",
]
