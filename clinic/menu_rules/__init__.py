"""
LINE 富菜单自动切换：按优先级评估 tag / mark / field 条件，选出患者应显示的菜单
"""
from .engine import match_field_value, matches_condition, matches_rule, select_rule
from .service import apply_menu_rules, build_snapshot
from .store import load_rule_set, save_rules
from .types import (
    FieldCondition,
    MarkCondition,
    MenuRule,
    MenuRuleSet,
    PatientSnapshot,
    TagCondition,
)

__all__ = [
    "FieldCondition",
    "MarkCondition",
    "MenuRule",
    "MenuRuleSet",
    "PatientSnapshot",
    "TagCondition",
    "apply_menu_rules",
    "build_snapshot",
    "load_rule_set",
    "match_field_value",
    "matches_condition",
    "matches_rule",
    "save_rules",
    "select_rule",
]
