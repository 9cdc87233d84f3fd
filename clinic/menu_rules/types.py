"""
菜单自动切换规则的内部标准格式
条件是封闭的三种：tag / mark / field，存储格式（JSON）与管理画面一致：
  {"type": "tag", "tag_ids": [1, 2], "tag_match": "any"}
  {"type": "mark", "mark_values": ["対応済み"]}
  {"type": "field", "field_id": 10, "field_operator": ">", "field_value": "50"}
"""
from dataclasses import dataclass, field
from typing import Any, Union

from clinic_ops.exceptions import ValidationError

TAG_MATCH_ANY = "any"
TAG_MATCH_ALL = "all"
OPERATOR_AND = "AND"
OPERATOR_OR = "OR"
FIELD_OPERATORS = ("=", "!=", "contains", ">", "<")


@dataclass(frozen=True)
class TagCondition:
    tag_ids: tuple = ()
    match: str = TAG_MATCH_ANY

    def to_dict(self):
        return {"type": "tag", "tag_ids": list(self.tag_ids), "tag_match": self.match}


@dataclass(frozen=True)
class MarkCondition:
    values: tuple = ()

    def to_dict(self):
        return {"type": "mark", "mark_values": list(self.values)}


@dataclass(frozen=True)
class FieldCondition:
    field_id: int
    operator: str = "="
    value: str = ""

    def to_dict(self):
        return {
            "type": "field",
            "field_id": self.field_id,
            "field_operator": self.operator,
            "field_value": self.value,
        }


Condition = Union[TagCondition, MarkCondition, FieldCondition]


@dataclass(frozen=True)
class PatientSnapshot:
    """评估时用到的患者状态：标签 id 集合、对应标记、字段 id → 值"""
    tag_ids: frozenset = frozenset()
    mark: str = ""
    fields: dict = field(default_factory=dict)


@dataclass
class MenuRule:
    id: str
    name: str
    conditions: list
    target_menu_id: str
    condition_operator: str = OPERATOR_AND
    priority: int = 0
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> "MenuRule":
        if not isinstance(data, dict):
            raise _invalid(f"rules[{index}]", "规则必须是 JSON 对象")

        conditions = data.get("conditions") or []
        if not isinstance(conditions, list):
            raise _invalid(f"rules[{index}].conditions", "conditions 必须是数组")

        operator = str(data.get("conditionOperator") or OPERATOR_AND).upper()
        if operator not in (OPERATOR_AND, OPERATOR_OR):
            raise _invalid(f"rules[{index}].conditionOperator", "只能是 AND 或 OR")

        target = data.get("target_menu_id")
        if target in (None, ""):
            raise _invalid(f"rules[{index}].target_menu_id", "目标菜单不能为空")

        try:
            priority = int(data.get("priority") or 0)
        except (TypeError, ValueError):
            raise _invalid(f"rules[{index}].priority", "priority 必须是整数")

        return cls(
            id=str(data.get("id") or index + 1),
            name=str(data.get("name") or ""),
            conditions=[parse_condition(c, f"rules[{index}].conditions[{i}]") for i, c in enumerate(conditions)],
            target_menu_id=str(target),
            condition_operator=operator,
            priority=priority,
            enabled=data.get("enabled", True) is not False,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "conditions": [c.to_dict() for c in self.conditions],
            "conditionOperator": self.condition_operator,
            "target_menu_id": self.target_menu_id,
            "priority": self.priority,
            "enabled": self.enabled,
        }


@dataclass
class MenuRuleSet:
    """整个规则列表 + 版本号（每次保存 +1）"""
    version: int = 0
    rules: list = field(default_factory=list)

    @classmethod
    def from_value(cls, value: Any) -> "MenuRuleSet":
        """
        TenantSetting.value → MenuRuleSet
        兼容旧格式：直接存了规则数组（没有 version）
        """
        if value in (None, "", {}):
            return cls()
        if isinstance(value, list):
            return cls(version=0, rules=parse_rules(value))
        if not isinstance(value, dict):
            raise _invalid("rules", "规则数据格式不正确")
        return cls(version=int(value.get("version") or 0), rules=parse_rules(value.get("rules") or []))

    def to_value(self) -> dict:
        return {"version": self.version, "rules": [r.to_dict() for r in self.rules]}


def parse_rules(items) -> list:
    if not isinstance(items, list):
        raise _invalid("rules", "rules 必须是数组")
    return [MenuRule.from_dict(item, i) for i, item in enumerate(items)]


def parse_condition(data: dict, path: str = "condition") -> Condition:
    if not isinstance(data, dict):
        raise _invalid(path, "条件必须是 JSON 对象")

    kind = data.get("type")
    if kind == "tag":
        ids = data.get("tag_ids") or []
        if not isinstance(ids, list):
            raise _invalid(f"{path}.tag_ids", "tag_ids 必须是数组")
        match = data.get("tag_match") or TAG_MATCH_ANY
        if match not in (TAG_MATCH_ANY, TAG_MATCH_ALL):
            raise _invalid(f"{path}.tag_match", "只能是 any 或 all")
        return TagCondition(tag_ids=tuple(_to_int(v, f"{path}.tag_ids") for v in ids), match=match)
    if kind == "mark":
        values = data.get("mark_values") or []
        if not isinstance(values, list):
            raise _invalid(f"{path}.mark_values", "mark_values 必须是数组")
        return MarkCondition(values=tuple(str(v) for v in values))
    if kind == "field":
        return FieldCondition(
            field_id=_to_int(data.get("field_id") or 0, f"{path}.field_id"),
            operator=str(data.get("field_operator") or "="),
            value=str(data.get("field_value") if data.get("field_value") is not None else ""),
        )
    raise _invalid(f"{path}.type", f"未知的条件类型: {kind}")


def _to_int(value, path):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise _invalid(path, "必须是整数")


def _invalid(field_name, message):
    return ValidationError(
        message="菜单规则格式校验失败",
        code="INVALID_MENU_RULES",
        detail={"errors": [{"field": field_name, "message": message}]},
    )
