"""
规则评估：纯函数，不读数据库，不持有状态
"""
import math

from .types import (
    OPERATOR_OR,
    TAG_MATCH_ALL,
    FieldCondition,
    MarkCondition,
    TagCondition,
)


def _as_number(text):
    if text == "":
        return None
    try:
        value = float(text)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(value) else value


def match_field_value(actual, operator, expected):
    """
    = / != / contains 按字符串比较
    > / < ：两边都能解析为数字（且都非空）时按数值，否则按字符串字典序
    未知运算符 → False
    """
    actual = actual or ""
    expected = expected or ""

    if operator == "=":
        return actual == expected
    if operator == "!=":
        return actual != expected
    if operator == "contains":
        return expected in actual
    if operator in (">", "<"):
        num_a, num_e = _as_number(actual), _as_number(expected)
        if num_a is not None and num_e is not None:
            left, right = num_a, num_e
        else:
            left, right = actual, expected
        return left > right if operator == ">" else left < right
    return False


def matches_condition(condition, snapshot):
    if isinstance(condition, TagCondition):
        if not condition.tag_ids:
            return False
        if condition.match == TAG_MATCH_ALL:
            return all(tag_id in snapshot.tag_ids for tag_id in condition.tag_ids)
        return any(tag_id in snapshot.tag_ids for tag_id in condition.tag_ids)
    if isinstance(condition, MarkCondition):
        return snapshot.mark in condition.values
    if isinstance(condition, FieldCondition):
        # 没有值的字段按空字符串比较
        actual = snapshot.fields.get(condition.field_id, "")
        return match_field_value(actual, condition.operator, condition.value)
    return False


def matches_rule(rule, snapshot):
    # 没有条件的规则永远不匹配（不是"全部满足"）
    if not rule.conditions:
        return False
    results = (matches_condition(c, snapshot) for c in rule.conditions)
    if rule.condition_operator == OPERATOR_OR:
        return any(results)
    return all(results)


def active_rules(rules):
    """只保留 enabled，按 priority 升序（sorted 稳定，同优先级保持原顺序）"""
    return sorted((r for r in rules if r.enabled), key=lambda r: r.priority)


def select_rule(rules, snapshot):
    """返回第一条匹配的规则，没有则 None"""
    for rule in active_rules(rules):
        if matches_rule(rule, snapshot):
            return rule
    return None
