"""
请求体解析和格式校验（前端 / LINE bot / 管理画面 → 后端）
"""
import json
import re

from clinic_ops.exceptions import ValidationError

from .menu_rules.types import parse_rules

# 商品代码：字母数字、下划线、点、横线
PRODUCT_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]{1,100}$")

REORDER_ID_PATTERN = re.compile(r"^\d+$")


def parse_json_body(body):
    """
    空 body 视为 {}；JSON 格式错误或不是对象时抛出 ValidationError
    """
    if not body:
        return {}
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(
            message="Invalid JSON format",
            code="INVALID_JSON",
            detail={"error": str(e)},
        )
    if not isinstance(data, dict):
        raise ValidationError(
            message="请求体必须是 JSON 对象",
            code="INVALID_REQUEST",
            detail={"errors": [{"field": "_", "message": "请求体必须是 JSON 对象"}]},
        )
    return data


def parse_reorder_id(value, field="id"):
    """正整数；"abc" / "1.5" / 0 / 负数 都拒绝"""
    if isinstance(value, bool):
        value = None
    text = str(value).strip() if value is not None else ""
    if not REORDER_ID_PATTERN.match(text) or int(text) <= 0:
        raise ValidationError(
            message="数据格式校验失败",
            code="INVALID_REORDER_ID",
            detail={"errors": [{"field": field, "message": "必须为正整数"}]},
        )
    return int(text)


def parse_apply_request(body):
    """
    POST /api/reorder/apply/
    {"product_code": "MJL_5mg_1m"}
    LINE 用户 ID 只认 line_user_id cookie，不从 body 取
    """
    data = parse_json_body(body)
    errors = []

    product_code = data.get("product_code")
    if not isinstance(product_code, str) or not product_code.strip():
        errors.append({"field": "product_code", "message": "该字段为必填"})
    elif not PRODUCT_CODE_PATTERN.match(product_code.strip()):
        errors.append({"field": "product_code", "message": "商品代码格式不正确"})

    if errors:
        raise ValidationError(
            message="数据格式校验失败",
            code="VALIDATION_ERROR",
            detail={"errors": errors},
        )
    return {"product_code": product_code.strip()}


def parse_decision_request(body):
    """
    POST /api/admin/reorders/approve|reject/
    {"id": 12, "karte_note": "...", "reason": "..."}
    """
    data = parse_json_body(body)
    reorder_id = parse_reorder_id(data.get("id"))

    errors = []
    for field in ("karte_note", "reason"):
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            errors.append({"field": field, "message": "必须为字符串"})
    if errors:
        raise ValidationError(
            message="数据格式校验失败",
            code="VALIDATION_ERROR",
            detail={"errors": errors},
        )
    return {
        "reorder_id": reorder_id,
        "karte_note": (data.get("karte_note") or "").strip() or None,
        "reason": (data.get("reason") or "").strip() or None,
    }


def parse_menu_rules_request(body):
    """
    PUT /api/admin/menu-rules/
    {"rules": [...], "version": 3}  version 可选，给了就做并发检查
    """
    data = parse_json_body(body)
    if "rules" not in data:
        raise ValidationError(
            message="数据格式校验失败",
            code="VALIDATION_ERROR",
            detail={"errors": [{"field": "rules", "message": "该字段为必填"}]},
        )
    version = data.get("version")
    if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
        raise ValidationError(
            message="数据格式校验失败",
            code="VALIDATION_ERROR",
            detail={"errors": [{"field": "version", "message": "必须为整数"}]},
        )
    return {"rules": parse_rules(data["rules"]), "version": version}


def parse_evaluate_request(body):
    data = parse_json_body(body)
    patient_id = data.get("patient_id")
    if not isinstance(patient_id, str) or not patient_id.strip():
        raise ValidationError(
            message="数据格式校验失败",
            code="VALIDATION_ERROR",
            detail={"errors": [{"field": "patient_id", "message": "该字段为必填"}]},
        )
    return {"patient_id": patient_id.strip(), "apply": data.get("apply") is True}
