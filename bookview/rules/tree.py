"""
Rule tree node types and their persisted representation.

A magic shelf is stored as a tagged JSON-like tree::

    group := {type: 'group', join: 'and' | 'or', name?: str, rules: [node, ...]}
    rule  := {field: str, operator: str, value?: any, valueStart?: any, valueEnd?: any}
    node  := group | rule

The shape is persisted and re-parsed across sessions, so ``to_dict`` and
``parse_group`` must stay inverse to each other. Field and operator names are
kept as strings here; they are resolved against the field table when the tree
is evaluated, so an unknown field is reported rather than breaking the parse.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
import json
import logging

import yaml

from .fields import (
    EMPTY_CHECK_OPERATORS,
    RuleOperator,
    resolve_field,
    resolve_operator,
)

logger = logging.getLogger(__name__)

JOIN_AND = 'and'
JOIN_OR = 'or'
JOINS = (JOIN_AND, JOIN_OR)


class MalformedRuleError(ValueError):
    """A persisted rule tree cannot be parsed."""


class EmptyRuleGroupError(ValueError):
    """A rule tree has no rule with both a field and an operator."""


@dataclass(frozen=True)
class Rule:
    """A single field/operator/value condition."""
    field: str
    operator: str
    value: Any = None
    value_start: Any = None
    value_end: Any = None

    @property
    def is_complete(self) -> bool:
        return bool(self.field) and bool(self.operator)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'field': self.field,
            'operator': self.operator,
            'value': _thaw(self.value),
            'valueStart': self.value_start,
            'valueEnd': self.value_end,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class Group:
    """A boolean combination of rules and nested groups."""
    join: str = JOIN_AND
    rules: Tuple['Node', ...] = ()
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': 'group'}
        if self.name:
            data['name'] = self.name
        data['join'] = self.join
        data['rules'] = [node.to_dict() for node in self.rules]
        return data


Node = Union[Rule, Group]


# =============================================================================
# Parsing
# =============================================================================


def parse_group(data: Any) -> Group:
    """
    Parse a persisted group.

    Raises:
        MalformedRuleError: If the structure is not a valid tree
    """
    if not isinstance(data, dict):
        raise MalformedRuleError(f"Group must be a mapping, got {type(data).__name__}")

    node_type = data.get('type', 'group')
    if node_type != 'group':
        raise MalformedRuleError(f"Expected a group, got type '{node_type}'")

    join = str(data.get('join', JOIN_AND)).lower()
    if join not in JOINS:
        raise MalformedRuleError(f"Unknown group join '{data.get('join')}'")

    rules = data.get('rules', [])
    if not isinstance(rules, list):
        raise MalformedRuleError("Group 'rules' must be a list")

    return Group(
        join=join,
        rules=tuple(parse_node(child) for child in rules),
        name=data.get('name'),
    )


def parse_node(data: Any) -> Node:
    """Parse a persisted rule or group."""
    if not isinstance(data, dict):
        raise MalformedRuleError(f"Rule node must be a mapping, got {type(data).__name__}")

    if data.get('type') == 'group' or 'rules' in data:
        return parse_group(data)

    if 'field' not in data or 'operator' not in data:
        missing = [k for k in ('field', 'operator') if k not in data]
        raise MalformedRuleError(f"Rule is missing required keys: {', '.join(missing)}")

    return Rule(
        field=_as_name(data['field']),
        operator=_as_name(data['operator']),
        value=_freeze(data.get('value')),
        value_start=data.get('valueStart', data.get('value_start')),
        value_end=data.get('valueEnd', data.get('value_end')),
    )


def loads(filter_json: Optional[str]) -> Group:
    """
    Parse a magic shelf's stored ``filter_json`` string.

    Raises:
        MalformedRuleError: On unparseable JSON or an invalid tree
    """
    if not filter_json or not str(filter_json).strip():
        raise MalformedRuleError("Magic shelf has no rule tree")
    try:
        data = json.loads(filter_json)
    except json.JSONDecodeError as e:
        raise MalformedRuleError(f"Rule tree is not valid JSON: {e}") from e
    return parse_group(data)


def dumps(group: Group) -> str:
    """Serialize a group to the stored JSON form."""
    return json.dumps(group.to_dict())


def to_yaml(group: Group) -> str:
    return yaml.dump(group.to_dict(), default_flow_style=False, allow_unicode=True, sort_keys=False)


def from_yaml(content: str) -> Group:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise MalformedRuleError(f"Rule tree is not valid YAML: {e}") from e
    return parse_group(data)


# =============================================================================
# Validation
# =============================================================================


def has_valid_rule(group: Group) -> bool:
    """True if the tree holds at least one rule with a field and an operator."""
    for node in group.rules:
        if isinstance(node, Group):
            if has_valid_rule(node):
                return True
        elif node.is_complete:
            return True
    return False


def empty_groups(group: Group, path: str = 'root') -> List[str]:
    """Paths of every group in the tree that holds no rules."""
    paths = [] if group.rules else [path]
    for index, node in enumerate(group.rules):
        if isinstance(node, Group):
            paths.extend(empty_groups(node, f"{path}.rules[{index}]"))
    return paths


def require_valid_rule(group: Group) -> Group:
    """
    Reject a tree that cannot be saved as a magic shelf.

    An empty group evaluates to no match, so one nested anywhere in the tree
    would make the whole shelf match nothing.

    Raises:
        EmptyRuleGroupError: If no complete rule exists anywhere in the tree,
            or if any group is empty
    """
    if not has_valid_rule(group):
        raise EmptyRuleGroupError("A magic shelf needs at least one valid rule")
    empty = empty_groups(group)
    if empty:
        raise EmptyRuleGroupError(f"Empty rule group at {', '.join(empty)}")
    return group


def find_issues(group: Group, path: str = 'root') -> List[str]:
    """
    List configuration problems in a tree, for the rule author.

    Problems are unknown fields or operators, operators illegal for their
    field, range rules with missing bounds, and empty groups. An empty list
    means every rule can be evaluated.
    """
    issues: List[str] = []

    if not group.rules:
        issues.append(f"{path}: group has no rules")

    for index, node in enumerate(group.rules):
        node_path = f"{path}.rules[{index}]"
        if isinstance(node, Group):
            issues.extend(find_issues(node, node_path))
            continue

        spec = resolve_field(node.field)
        operator = resolve_operator(node.operator)
        if spec is None:
            issues.append(f"{node_path}: unknown field '{node.field}'")
            continue
        if operator is None:
            issues.append(f"{node_path}: unknown operator '{node.operator}'")
            continue
        if not spec.allows(operator):
            issues.append(
                f"{node_path}: operator '{operator.value}' is not allowed for field '{spec.field.value}'"
            )
            continue
        if operator == RuleOperator.IN_BETWEEN and (node.value_start is None or node.value_end is None):
            issues.append(f"{node_path}: 'in_between' needs both valueStart and valueEnd")
        elif operator not in EMPTY_CHECK_OPERATORS and operator != RuleOperator.IN_BETWEEN and _is_blank(node.value):
            issues.append(f"{node_path}: rule has no value")

    return issues


def _as_name(value: Any) -> str:
    return '' if value is None else str(value)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _freeze(value: Any) -> Any:
    # Lists become tuples so Rule stays hashable
    if isinstance(value, list):
        return tuple(value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value
