"""
Magic shelf rules.

A magic shelf is a saved boolean rule tree. Rules compare one book field
against a value; groups combine rules and nested groups with AND/OR.

Example:
    from bookview.rules import RuleEvaluator, loads

    group = loads('{"type": "group", "join": "and", "rules": ['
                  '{"field": "readStatus", "operator": "equals", "value": "READ"}]}')
    evaluator = RuleEvaluator()
    read_books = evaluator.select(books, group)
"""

from .evaluator import RuleEvaluator, evaluate
from .fields import FIELD_SPECS, FieldKind, FieldSpec, RuleField, RuleOperator, is_legal, operators_for
from .tree import (
    EmptyRuleGroupError,
    Group,
    MalformedRuleError,
    Rule,
    dumps,
    empty_groups,
    find_issues,
    has_valid_rule,
    loads,
    parse_group,
    require_valid_rule,
)

__all__ = [
    'RuleEvaluator', 'evaluate',
    'FIELD_SPECS', 'FieldKind', 'FieldSpec', 'RuleField', 'RuleOperator', 'is_legal', 'operators_for',
    'EmptyRuleGroupError', 'Group', 'MalformedRuleError', 'Rule',
    'dumps', 'empty_groups', 'find_issues', 'has_valid_rule', 'loads', 'parse_group', 'require_valid_rule',
]
