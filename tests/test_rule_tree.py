"""
Tests for rule tree parsing, serialization and validation.
"""

import json

import pytest

from bookview.rules.tree import (
    EmptyRuleGroupError,
    Group,
    MalformedRuleError,
    Rule,
    dumps,
    empty_groups,
    find_issues,
    from_yaml,
    has_valid_rule,
    loads,
    parse_group,
    require_valid_rule,
    to_yaml,
)


NESTED = {
    "type": "group",
    "join": "or",
    "rules": [
        {"field": "readStatus", "operator": "equals", "value": "READ"},
        {
            "type": "group",
            "name": "long and good",
            "join": "and",
            "rules": [
                {"field": "pageCount", "operator": "greater_than", "value": "400"},
                {"field": "amazonRating", "operator": "in_between", "valueStart": "4", "valueEnd": "5"},
            ],
        },
        {"field": "authors", "operator": "includes_any", "value": ["Frank Herbert", "Isaac Asimov"]},
    ],
}


class TestParsing:

    def test_parse_nested_tree(self):
        group = parse_group(NESTED)

        assert group.join == "or"
        assert len(group.rules) == 3
        assert group.rules[0] == Rule("readStatus", "equals", "READ")

        inner = group.rules[1]
        assert isinstance(inner, Group)
        assert inner.name == "long and good"
        assert inner.rules[1].value_start == "4"
        assert inner.rules[1].value_end == "5"

    def test_list_values_are_frozen(self):
        group = parse_group(NESTED)
        rule = group.rules[2]
        assert rule.value == ("Frank Herbert", "Isaac Asimov")
        hash(rule)

    def test_join_is_case_insensitive(self):
        assert parse_group({"type": "group", "join": "AND", "rules": []}).join == "and"

    def test_missing_join_defaults_to_and(self):
        assert parse_group({"rules": []}).join == "and"

    @pytest.mark.parametrize("data", [
        [],
        "group",
        {"type": "rule", "rules": []},
        {"type": "group", "join": "xor", "rules": []},
        {"type": "group", "join": "and", "rules": "not a list"},
        {"type": "group", "join": "and", "rules": [{"field": "title"}]},
        {"type": "group", "join": "and", "rules": [{"operator": "equals"}]},
        {"type": "group", "join": "and", "rules": [42]},
    ])
    def test_malformed_trees_raise(self, data):
        with pytest.raises(MalformedRuleError):
            parse_group(data)

    def test_malformed_error_is_value_error(self):
        assert issubclass(MalformedRuleError, ValueError)

    @pytest.mark.parametrize("text", [None, "", "   ", "{not json", '{"type": "group", "rules": [{}]}'])
    def test_loads_rejects_bad_input(self, text):
        with pytest.raises(MalformedRuleError):
            loads(text)


class TestSerialization:

    def test_dumps_then_loads_preserves_tree(self):
        group = parse_group(NESTED)
        assert loads(dumps(group)) == group

    def test_null_keys_are_dropped(self):
        data = Rule("title", "is_empty").to_dict()
        assert data == {"field": "title", "operator": "is_empty"}

    def test_group_shape(self):
        data = json.loads(dumps(parse_group(NESTED)))
        assert data["type"] == "group"
        assert data["rules"][1]["name"] == "long and good"
        assert data["rules"][1]["rules"][1]["valueStart"] == "4"
        assert data["rules"][2]["value"] == ["Frank Herbert", "Isaac Asimov"]

    def test_yaml_export_and_import(self):
        group = parse_group(NESTED)
        content = to_yaml(group)
        assert "readStatus" in content
        assert from_yaml(content) == group

    def test_yaml_accepts_json(self):
        assert from_yaml(json.dumps(NESTED)) == parse_group(NESTED)

    def test_bad_yaml_raises(self):
        with pytest.raises(MalformedRuleError):
            from_yaml("rules: [unclosed")


class TestValidation:

    def test_tree_with_a_rule_is_valid(self):
        assert has_valid_rule(parse_group(NESTED))

    def test_empty_group_is_invalid(self):
        assert not has_valid_rule(Group())

    def test_rule_inside_nested_group_counts(self):
        tree = Group(rules=(Group(rules=(Group(rules=(Rule("title", "contains", "dune"),)),)),))
        assert has_valid_rule(tree)

    def test_incomplete_rules_do_not_count(self):
        tree = Group(rules=(Rule("", "equals", "x"), Rule("title", "", "x"), Group()))
        assert not has_valid_rule(tree)

    def test_require_valid_rule(self):
        with pytest.raises(EmptyRuleGroupError):
            require_valid_rule(Group(rules=(Group(),)))
        tree = Group(rules=(Rule("title", "contains", "dune"),))
        assert require_valid_rule(tree) is tree

    def test_require_valid_rule_rejects_nested_empty_group(self):
        tree = Group(rules=(
            Rule("readStatus", "equals", "READ"),
            Group(rules=(Rule("title", "contains", "dune"), Group("or", ()))),
        ))

        with pytest.raises(EmptyRuleGroupError, match=r"root\.rules\[1\]\.rules\[1\]"):
            require_valid_rule(tree)

    def test_empty_groups(self):
        tree = Group(rules=(Group(), Group(rules=(Rule("title", "contains", "x"),))))
        assert empty_groups(tree) == ["root.rules[0]"]
        assert empty_groups(Group()) == ["root"]


class TestFindIssues:

    def test_clean_tree_has_no_issues(self):
        assert find_issues(parse_group(NESTED)) == []

    def test_reports_each_problem_with_path(self):
        tree = Group(rules=(
            Rule("colour", "equals", "red"),
            Rule("title", "roughly", "dune"),
            Rule("pageCount", "contains", "3"),
            Rule("amazonRating", "in_between", value_start="4"),
            Rule("title", "equals", "  "),
            Group(name="empty"),
        ))

        issues = find_issues(tree)

        assert len(issues) == 6
        assert "root.rules[0]: unknown field 'colour'" in issues
        assert "root.rules[1]: unknown operator 'roughly'" in issues
        assert any("'contains' is not allowed for field 'pageCount'" in i for i in issues)
        assert any("needs both valueStart and valueEnd" in i for i in issues)
        assert "root.rules[4]: rule has no value" in issues
        assert "root.rules[5]: group has no rules" in issues

    def test_empty_checks_need_no_value(self):
        assert find_issues(Group(rules=(Rule("seriesName", "is_empty"),))) == []
