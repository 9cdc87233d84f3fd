"""
业务逻辑：再处方申请 / 承认 / 却下 / 取消 / 付款确认
状态变更都在事务里完成；通知、审计、缓存失效、菜单重新评估在提交后执行
"""
import logging
import math
from dataclasses import dataclass, asdict
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, TextField, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from clinic_ops.exceptions import (
    DuplicateRequestError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

from .audit import record_audit
from .cache import invalidate_dashboard_cache
from .dose import build_karte_note, extract_dose, format_dose, is_first_dose_tier
from .duplication_detection import (
    check_intake_gate,
    check_open_reorder,
    has_prior_dose_history,
    last_paid_dose,
    next_reorder_number,
)
from .hooks import PostCommitHooks
from .messaging import flex as flex_messages, get_admin_group_id
from .metrics import REORDER_APPLIED, REORDER_CANCELED, REORDER_DECISION, REORDER_PAID
from .models import Order, Patient, ReorderRequest
from .tasks import apply_menu_rules_task, push_line_message_task

logger = logging.getLogger(__name__)

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"
HISTORY_LIMIT = 5


@dataclass
class DecisionOutcome:
    """承认 / 却下 的结果；skipped=True 表示申请已不是 pending，没有做任何变更"""
    reorder_id: int
    status: str
    skipped: bool = False
    message: str = ""

    def to_dict(self):
        return asdict(self)


@dataclass
class PaymentOutcome:
    """付款确认结果；updated=False 表示没有匹配的 confirmed 申请（幂等 no-op）"""
    updated: bool
    status: Optional[str] = None
    reorder_id: Optional[int] = None

    def to_dict(self):
        return asdict(self)


def _karte_note_expr(note):
    # 病历只写一次：已有值时保持不变
    return Coalesce(F("karte_note"), Value(note), output_field=TextField())


def _get_reorder(tenant_id, reorder_id):
    reorder = (
        ReorderRequest.objects
        .select_related("patient")
        .filter(tenant_id=tenant_id, pk=reorder_id)
        .first()
    )
    if reorder is None:
        raise NotFoundError(
            message="再処方申請が見つかりません",
            detail={"reorder_id": reorder_id},
        )
    return reorder


def _generated_karte_note(reorder):
    prev_dose = last_paid_dose(reorder.patient, exclude_reorder_id=reorder.id)
    return build_karte_note(reorder.product_code, prev_dose, extract_dose(reorder.product_code))


# ---------------------------------------------------------------------------
# 申请
# ---------------------------------------------------------------------------

def apply_reorder(tenant_id, patient_id, product_code, line_uid=None):
    """
    创建 pending 的再处方申请
    问诊 NG → BlockedError；已有 pending/confirmed → DuplicateRequestError
    被拦下时不产生任何副作用
    """
    product_code = (product_code or "").strip() if isinstance(product_code, str) else ""
    if not product_code:
        raise ValidationError(
            message="商品コードを指定してください",
            code="PRODUCT_REQUIRED",
            detail={"errors": [{"field": "product_code", "message": "该字段为必填"}]},
        )

    hooks = PostCommitHooks()
    with transaction.atomic():
        # 锁住患者行：同一患者的并发申请在这里排队
        patient = (
            Patient.objects
            .select_for_update()
            .filter(tenant_id=tenant_id, patient_id=patient_id)
            .first()
        )
        if patient is None:
            raise NotFoundError(message="患者情報が見つかりません", detail={"patient_id": patient_id})

        check_intake_gate(patient)
        check_open_reorder(patient)

        try:
            with transaction.atomic():
                reorder = ReorderRequest.objects.create(
                    tenant_id=tenant_id,
                    patient=patient,
                    product_code=product_code,
                    reorder_number=next_reorder_number(patient),
                    status=ReorderRequest.STATUS_PENDING,
                    line_uid=line_uid or patient.line_uid,
                )
        except IntegrityError:
            # 部分唯一索引兜底：锁失效（如 SQLite）时的并发申请
            check_open_reorder(patient)
            raise DuplicateRequestError(detail={"patient_id": patient.patient_id})

        dose = extract_dose(product_code)
        needs_first_dose_warning = (
            is_first_dose_tier(product_code, getattr(settings, "FIRST_DOSE_WARNING_MG", None))
            and not has_prior_dose_history(patient, dose)
        )

        hooks.add("cache", invalidate_dashboard_cache, patient.patient_id, tenant_id)
        hooks.add("staff_notify", notify_staff_new_reorder, reorder.id)
        if needs_first_dose_warning:
            hooks.add("first_dose_warning", notify_first_dose_warning, tenant_id, patient.patient_id, dose)
        hooks.register()

    REORDER_APPLIED.inc()
    logger.info(
        "reorder applied: id=%s number=%s patient=%s product=%s",
        reorder.id, reorder.reorder_number, patient.patient_id, product_code,
    )
    return reorder


def notify_staff_new_reorder(reorder_id):
    reorder = ReorderRequest.objects.select_related("patient").get(pk=reorder_id)
    patient = reorder.patient
    orders = Order.objects.filter(patient=patient).order_by("-created_at", "-id")[:HISTORY_LIMIT]
    message = flex_messages.reorder_request_flex(
        reorder.id,
        patient.patient_id,
        patient.name or "-",
        reorder.product_code,
        reorder.reorder_number,
        flex_messages.format_history(orders),
    )
    push_line_message_task.delay("admin", get_admin_group_id(reorder.tenant_id), [message], reorder.tenant_id)


def notify_first_dose_warning(tenant_id, patient_id, dose):
    text = flex_messages.first_dose_warning_text(patient_id, format_dose(dose))
    push_line_message_task.delay(
        "admin", get_admin_group_id(tenant_id), [flex_messages.text_message(text)], tenant_id,
    )


# ---------------------------------------------------------------------------
# 承认 / 却下
# ---------------------------------------------------------------------------

def decide_reorder(tenant_id, reorder_id, decision, karte_note=None, reason=None, actor=""):
    """
    pending → confirmed / rejected
    非 pending（包括并发下被别人先处理）→ DecisionOutcome(skipped=True)
    """
    if decision not in (DECISION_APPROVE, DECISION_REJECT):
        raise ValidationError(
            message="decision は approve または reject を指定してください",
            code="INVALID_DECISION",
            detail={"decision": decision},
        )

    reorder = _get_reorder(tenant_id, reorder_id)
    if reorder.status != ReorderRequest.STATUS_PENDING:
        return _skipped(reorder, decision)

    now = timezone.now()
    hooks = PostCommitHooks()
    with transaction.atomic():
        pending = ReorderRequest.objects.filter(pk=reorder.pk, status=ReorderRequest.STATUS_PENDING)
        if decision == DECISION_APPROVE:
            note = reorder.karte_note
            if note is None:
                note = karte_note or _generated_karte_note(reorder)
            updated = pending.update(
                status=ReorderRequest.STATUS_CONFIRMED,
                approved_at=now,
                karte_note=_karte_note_expr(note),
                updated_at=now,
            )
        else:
            updated = pending.update(
                status=ReorderRequest.STATUS_REJECTED,
                rejected_at=now,
                rejection_reason=reason or "",
                updated_at=now,
            )

        if not updated:
            reorder.refresh_from_db()
            return _skipped(reorder, decision)

        reorder.refresh_from_db()
        patient = reorder.patient
        details = {
            "patient_id": patient.patient_id,
            "reorder_number": reorder.reorder_number,
            "product_code": reorder.product_code,
        }
        if decision == DECISION_APPROVE:
            push_text = flex_messages.approval_text(reorder.product_code)
        else:
            details["reason"] = reason or ""
            push_text = flex_messages.rejection_text(reorder.product_code, reason or "")

        hooks.add("audit", record_audit, tenant_id, f"reorder.{decision}", "reorder", reorder.id, details, actor)
        hooks.add(
            "patient_push",
            push_line_message_task.delay,
            "patient",
            reorder.line_uid or patient.line_uid,
            [flex_messages.text_message(push_text)],
            tenant_id,
        )
        hooks.add("cache", invalidate_dashboard_cache, patient.patient_id, tenant_id)
        hooks.add("menu_rules", apply_menu_rules_task.delay, tenant_id, patient.patient_id)
        hooks.register()

    REORDER_DECISION.labels(decision=decision, outcome="applied").inc()
    logger.info("reorder %s: id=%s number=%s patient=%s", decision, reorder.id, reorder.reorder_number, patient.patient_id)
    return DecisionOutcome(reorder_id=reorder.id, status=reorder.status)


def _skipped(reorder, decision):
    REORDER_DECISION.labels(decision=decision, outcome="skipped").inc()
    logger.info("reorder %s skipped: id=%s status=%s", decision, reorder.id, reorder.status)
    return DecisionOutcome(
        reorder_id=reorder.id,
        status=reorder.status,
        skipped=True,
        message=f"この申請は既に処理済みです（status: {reorder.status}）",
    )


# ---------------------------------------------------------------------------
# 取消
# ---------------------------------------------------------------------------

def cancel_reorder(tenant_id, reorder_id, requester_patient_id):
    """
    只能取消自己的申请；别人的申请按不存在处理
    pending / confirmed → canceled；已终结 → InvalidStateError
    """
    reorder = (
        ReorderRequest.objects
        .select_related("patient")
        .filter(tenant_id=tenant_id, pk=reorder_id)
        .first()
    )
    if reorder is None or reorder.patient.patient_id != requester_patient_id:
        raise NotFoundError(message="再処方申請が見つかりません", detail={"reorder_id": reorder_id})
    if reorder.status in ReorderRequest.TERMINAL_STATUSES:
        raise _invalid_state(reorder)

    now = timezone.now()
    hooks = PostCommitHooks()
    with transaction.atomic():
        updated = (
            ReorderRequest.objects
            .filter(pk=reorder.pk, status__in=ReorderRequest.OPEN_STATUSES)
            .update(status=ReorderRequest.STATUS_CANCELED, canceled_at=now, updated_at=now)
        )
        reorder.refresh_from_db()
        if not updated:
            raise _invalid_state(reorder)

        patient_id = reorder.patient.patient_id
        hooks.add("cache", invalidate_dashboard_cache, patient_id, tenant_id)
        hooks.add(
            "staff_notify",
            push_line_message_task.delay,
            "admin",
            get_admin_group_id(tenant_id),
            [flex_messages.text_message(flex_messages.cancellation_text(patient_id, reorder.reorder_number))],
            tenant_id,
        )
        hooks.add(
            "audit", record_audit, tenant_id, "reorder.cancel", "reorder", reorder.id,
            {"patient_id": patient_id, "reorder_number": reorder.reorder_number}, patient_id,
        )
        hooks.register()

    REORDER_CANCELED.inc()
    logger.info("reorder canceled: id=%s number=%s patient=%s", reorder.id, reorder.reorder_number, patient_id)
    return reorder


def _invalid_state(reorder):
    return InvalidStateError(
        message="この申請はキャンセルできません",
        detail={"reorder_id": reorder.id, "status": reorder.status},
    )


# ---------------------------------------------------------------------------
# 付款确认
# ---------------------------------------------------------------------------

def parse_reorder_reference(reference):
    """
    支付通知里的再处方引用：必须是 >= 2 的有限数字
    1 留给初诊订单，不能指向再处方
    """
    text = str(reference if reference is not None else "").strip()
    try:
        value = float(text)
    except ValueError:
        value = math.nan
    if not math.isfinite(value) or value < 2:
        raise ValidationError(
            message="Invalid reorder reference",
            code="INVALID_REORDER_REFERENCE",
            detail={"reference": text},
        )
    return value


def _mark_paid(row, now):
    """条件更新 confirmed → paid，返回是否真的迁移了"""
    values = {"status": ReorderRequest.STATUS_PAID, "paid_at": now, "updated_at": now}
    if row.karte_note is None:
        values["karte_note"] = _karte_note_expr(_generated_karte_note(row))
    updated = (
        ReorderRequest.objects
        .filter(pk=row.pk, status=ReorderRequest.STATUS_CONFIRMED)
        .update(**values)
    )
    row.refresh_from_db()
    return bool(updated)


def confirm_reorder_payment(tenant_id, reference, patient_id=None, product_code=None):
    """
    confirmed → paid
    有 patient_id 时先按 (患者, reorder_number) 更新，0 行变化再按主键重试；
    没有 patient_id 时只按主键（reorder_number 跨患者不唯一）
    """
    value = parse_reorder_reference(reference)
    if not value.is_integer():
        logger.warning("payment reference matches no reorder: %s", reference)
        return PaymentOutcome(updated=False)
    number = int(value)

    scoped = ReorderRequest.objects.select_related("patient").filter(tenant_id=tenant_id)
    if patient_id:
        scoped = scoped.filter(patient__patient_id=patient_id)

    now = timezone.now()
    hooks = PostCommitHooks()
    with transaction.atomic():
        candidates = []
        if patient_id:
            candidates.append(scoped.filter(reorder_number=number).first())
        candidates.append(scoped.filter(pk=number).first())
        candidates = list({c.pk: c for c in candidates if c is not None}.values())
        if not candidates:
            logger.warning("payment reference matches no reorder: ref=%s patient=%s", number, patient_id)
            return PaymentOutcome(updated=False)

        target = next((c for c in candidates if _mark_paid(c, now)), None)
        if target is None:
            first = candidates[0]
            logger.info("payment for reorder ignored: id=%s status=%s", first.id, first.status)
            return PaymentOutcome(updated=False, status=first.status, reorder_id=first.id)

        owner = target.patient.patient_id
        hooks.add("cache", invalidate_dashboard_cache, owner, tenant_id)
        hooks.add("menu_rules", apply_menu_rules_task.delay, tenant_id, owner)
        hooks.add(
            "audit", record_audit, tenant_id, "reorder.paid", "reorder", target.id,
            {"patient_id": owner, "reorder_number": target.reorder_number, "product_code": product_code or target.product_code},
            "payment_webhook",
        )
        hooks.register()

    REORDER_PAID.inc()
    logger.info("reorder paid: id=%s number=%s patient=%s", target.id, target.reorder_number, owner)
    return PaymentOutcome(updated=True, status=target.status, reorder_id=target.id)


def record_payment(tenant_id, notice):
    """
    处理一条已验签的支付通知
    - 未完成的付款：不处理
    - 再处方：confirm_reorder_payment
    - 有患者 ID：按 payment_id 记一条 Order（处方历史）
    返回处理结果 dict（写日志用）
    """
    result = {"gateway": notice.gateway, "payment_id": notice.payment_id, "status": notice.status}
    if not notice.is_completed:
        result["action"] = "ignored"
        return result

    if notice.is_reorder:
        outcome = confirm_reorder_payment(
            tenant_id, notice.reorder_reference, notice.patient_id or None, notice.product_code or None,
        )
        result["reorder"] = outcome.to_dict()

    if notice.patient_id:
        patient = Patient.objects.filter(tenant_id=tenant_id, patient_id=notice.patient_id).first()
        if patient is None:
            logger.warning("payment for unknown patient: gateway=%s patient=%s", notice.gateway, notice.patient_id)
        else:
            Order.objects.update_or_create(
                tenant_id=tenant_id,
                payment_id=notice.payment_id,
                defaults={
                    "patient": patient,
                    "product_code": notice.product_code,
                    "paid_at": timezone.now(),
                },
            )
            hooks = PostCommitHooks()
            hooks.add("cache", invalidate_dashboard_cache, patient.patient_id, tenant_id)
            hooks.add("menu_rules", apply_menu_rules_task.delay, tenant_id, patient.patient_id)
            hooks.register()
            result["order"] = notice.payment_id

    result["action"] = "processed"
    return result


# ---------------------------------------------------------------------------
# 管理画面列表
# ---------------------------------------------------------------------------

def list_reorders(tenant_id, include_all=False):
    """默认只列 pending；include_all=True 列全部。新的在前"""
    queryset = (
        ReorderRequest.objects
        .filter(tenant_id=tenant_id)
        .select_related("patient")
        .order_by("-created_at", "-id")
    )
    if not include_all:
        queryset = queryset.filter(status=ReorderRequest.STATUS_PENDING)

    items = []
    for r in queryset[:200]:
        items.append({
            "id": r.id,
            "reorder_number": r.reorder_number,
            "patient_id": r.patient.patient_id,
            "patient_name": r.patient.name,
            "product_code": r.product_code,
            "status": r.status,
            "karte_note": r.karte_note,
            "rejection_reason": r.rejection_reason,
            "created_at": r.created_at.isoformat(),
            "approved_at": r.approved_at.isoformat() if r.approved_at else None,
            "paid_at": r.paid_at.isoformat() if r.paid_at else None,
        })
    return {"success": True, "data": {"results": items}}
