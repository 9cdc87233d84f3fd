"""
HTTP 层：解析请求 → 调 services → 返回统一 JSON
BaseAppException 由 AppExceptionMiddleware 统一转为错误响应
"""
import hmac
import logging

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from clinic_ops.exceptions import AuthenticationError, BlockError, NotFoundError, ValidationError

from . import services
from .cache import claim_once
from .menu_rules import load_rule_set, save_rules
from .menu_rules.service import apply_menu_rules, evaluate_patient
from .metrics import PAYMENT_WEBHOOK
from .models import Patient
from .payments import get_adapter
from .serializers import (
    parse_apply_request,
    parse_decision_request,
    parse_evaluate_request,
    parse_menu_rules_request,
    parse_reorder_id,
)

logger = logging.getLogger(__name__)

PATIENT_COOKIE = "patient_id"
PATIENT_HEADER = "HTTP_X_PATIENT_ID"
LINE_UID_COOKIE = "line_user_id"
ADMIN_TOKEN_HEADER = "HTTP_X_ADMIN_TOKEN"


def _json(data, status=200):
    return JsonResponse(data, status=status, json_dumps_params={"ensure_ascii": False})


def _require_method(request, *methods):
    if request.method not in methods:
        raise BlockError(
            message="Method not allowed",
            code="METHOD_NOT_ALLOWED",
            detail={"allowed": list(methods)},
            http_status=405,
        )


def _require_patient(request):
    """患者身份：patient_id cookie 优先，其次 X-Patient-Id 头"""
    patient_id = (request.COOKIES.get(PATIENT_COOKIE) or request.META.get(PATIENT_HEADER) or "").strip()
    if not patient_id:
        raise AuthenticationError(message="ログインが必要です")
    return patient_id


def _require_admin(request):
    expected = getattr(settings, "ADMIN_API_TOKEN", "") or ""
    given = request.META.get(ADMIN_TOKEN_HEADER) or ""
    if not expected or not hmac.compare_digest(expected.encode(), given.encode()):
        raise AuthenticationError(message="管理者認証に失敗しました")
    return "admin"


# ---------------------------------------------------------------------------
# 患者
# ---------------------------------------------------------------------------

@csrf_exempt
def apply_reorder(request):
    _require_method(request, "POST")
    patient_id = _require_patient(request)
    data = parse_apply_request(request.body)
    reorder = services.apply_reorder(
        request.tenant_id,
        patient_id,
        data["product_code"],
        line_uid=(request.COOKIES.get(LINE_UID_COOKIE) or "").strip() or None,
    )
    return _json({
        "success": True,
        "data": {
            "reorder_id": reorder.id,
            "reorder_number": reorder.reorder_number,
            "status": reorder.status,
        },
    })


@csrf_exempt
def cancel_reorder(request, reorder_id):
    _require_method(request, "POST")
    patient_id = _require_patient(request)
    reorder = services.cancel_reorder(request.tenant_id, parse_reorder_id(reorder_id), patient_id)
    return _json({"success": True, "data": {"reorder_id": reorder.id, "status": reorder.status}})


# ---------------------------------------------------------------------------
# 管理画面
# ---------------------------------------------------------------------------

def admin_list_reorders(request):
    _require_method(request, "GET")
    _require_admin(request)
    include_all = request.GET.get("all") == "1"
    return _json(services.list_reorders(request.tenant_id, include_all=include_all))


def _decide(request, decision):
    _require_method(request, "POST")
    actor = _require_admin(request)
    data = parse_decision_request(request.body)
    outcome = services.decide_reorder(
        request.tenant_id,
        data["reorder_id"],
        decision,
        karte_note=data["karte_note"],
        reason=data["reason"],
        actor=actor,
    )
    return _json({"success": True, "data": outcome.to_dict()})


@csrf_exempt
def admin_approve_reorder(request):
    return _decide(request, services.DECISION_APPROVE)


@csrf_exempt
def admin_reject_reorder(request):
    return _decide(request, services.DECISION_REJECT)


@csrf_exempt
def admin_menu_rules(request):
    _require_method(request, "GET", "PUT")
    _require_admin(request)
    if request.method == "GET":
        rule_set = load_rule_set(request.tenant_id)
    else:
        data = parse_menu_rules_request(request.body)
        rule_set = save_rules(request.tenant_id, data["rules"], expected_version=data["version"])
    return _json({"success": True, "data": rule_set.to_value()})


@csrf_exempt
def admin_evaluate_menu_rules(request):
    """
    dry-run：看某个患者会匹配哪条规则；apply=true 时真的切换菜单
    """
    _require_method(request, "POST")
    _require_admin(request)
    data = parse_evaluate_request(request.body)
    if data["apply"]:
        rule = apply_menu_rules(request.tenant_id, data["patient_id"])
    else:
        patient = Patient.objects.filter(tenant_id=request.tenant_id, patient_id=data["patient_id"]).first()
        if patient is None:
            raise NotFoundError(message="患者情報が見つかりません", detail={"patient_id": data["patient_id"]})
        rule = evaluate_patient(patient)
    return _json({"success": True, "data": {"rule": rule.to_dict() if rule else None}})


# ---------------------------------------------------------------------------
# 支付 webhook
# ---------------------------------------------------------------------------

@csrf_exempt
def payment_webhook(request, gateway):
    """
    网关只看状态码：验签失败 401，其它情况（格式错误、找不到申请、内部错误）都回 200，避免网关无限重试
    """
    try:
        adapter = get_adapter(gateway, request.tenant_id)
    except ValueError:
        raise NotFoundError(message="Unknown payment gateway", detail={"gateway": gateway})

    if request.method != "POST":
        return HttpResponse("ok")

    try:
        notice = adapter.process(request.body, request.headers)
    except AuthenticationError:
        PAYMENT_WEBHOOK.labels(gateway=gateway, result="unauthorized").inc()
        logger.error("payment webhook signature mismatch: gateway=%s", gateway)
        return HttpResponse("unauthorized", status=401)
    except ValidationError as exc:
        PAYMENT_WEBHOOK.labels(gateway=gateway, result="invalid").inc()
        logger.warning("payment webhook unparsable: gateway=%s code=%s", gateway, exc.code)
        return HttpResponse("ok")

    ttl = getattr(settings, "PAYMENT_IDEMPOTENCY_TTL_SECONDS", 24 * 3600)
    if not claim_once(gateway, notice.idempotency_key, ttl):
        PAYMENT_WEBHOOK.labels(gateway=gateway, result="duplicate").inc()
        logger.info("payment webhook duplicate: gateway=%s key=%s", gateway, notice.idempotency_key)
        return HttpResponse("ok")

    try:
        result = services.record_payment(request.tenant_id, notice)
    except ValidationError as exc:
        PAYMENT_WEBHOOK.labels(gateway=gateway, result="invalid").inc()
        logger.warning(
            "payment webhook rejected: gateway=%s payment=%s code=%s detail=%s",
            gateway, notice.payment_id, exc.code, exc.detail,
        )
        return HttpResponse("ok")
    except Exception:
        PAYMENT_WEBHOOK.labels(gateway=gateway, result="error").inc()
        logger.exception("payment webhook failed: gateway=%s payment=%s", gateway, notice.payment_id)
        return HttpResponse("ok")

    PAYMENT_WEBHOOK.labels(gateway=gateway, result=result["action"]).inc()
    logger.info("payment webhook handled: %s", result)
    return HttpResponse("ok")
