"""
再处方申请前的检查
- 问诊闸门：最新一条（status 非 null 的）问诊为 "NG" → 阻止 (BlockedError)
- 重复申请：已有 pending / confirmed 的申请 → 阻止 (DuplicateRequestError)
- 编号：reorder_number = (该患者已有最大值，没有则按 1) + 1
- 首次剂量：同档或相邻档有无处方历史（只用于警告，不阻止）
"""
from django.db.models import Max

from clinic_ops.exceptions import BlockedError, DuplicateRequestError

from .dose import adjacent_doses, extract_dose
from .models import Intake, Order, ReorderRequest

NG_STATUS = "NG"

# 1 号留给初诊 / 预约关联的订单
RESERVED_REORDER_NUMBER = 1


def latest_intake_status(patient):
    """最新一条已判定的问诊 status；status 为 null 的记录忽略"""
    return (
        Intake.objects
        .filter(patient=patient, status__isnull=False)
        .order_by('-created_at', '-id')
        .values_list('status', flat=True)
        .first()
    )


def check_intake_gate(patient):
    """
    status 正好是 "NG" 才阻止；None / "" / "OK" / 没有问诊记录都放行
    """
    if latest_intake_status(patient) == NG_STATUS:
        raise BlockedError(detail={"patient_id": patient.patient_id})


def find_open_reorder(patient):
    return (
        ReorderRequest.objects
        .filter(patient=patient, status__in=ReorderRequest.OPEN_STATUSES)
        .order_by('-created_at', '-id')
        .first()
    )


def check_open_reorder(patient):
    """
    已有 pending / confirmed → DuplicateRequestError
    paid / rejected / canceled / 没有记录 → 放行
    """
    existing = find_open_reorder(patient)
    if existing is not None:
        raise DuplicateRequestError(
            detail={"reorder_id": existing.id, "status": existing.status},
        )


def compute_next_reorder_number(current_max):
    """None 和 0 都视为"没有"，第一个真正的再处方编号为 2"""
    return (current_max or RESERVED_REORDER_NUMBER) + 1


def next_reorder_number(patient):
    current_max = (
        ReorderRequest.objects
        .filter(patient=patient)
        .aggregate(m=Max('reorder_number'))['m']
    )
    return compute_next_reorder_number(current_max)


def has_prior_dose_history(patient, dose):
    """
    同档或相邻档有过处方：已付款订单，或 confirmed / paid 的再处方
    """
    tiers = set(adjacent_doses(dose))
    if not tiers:
        return False

    order_codes = Order.objects.filter(patient=patient).values_list('product_code', flat=True)
    reorder_codes = (
        ReorderRequest.objects
        .filter(
            patient=patient,
            status__in=[ReorderRequest.STATUS_CONFIRMED, ReorderRequest.STATUS_PAID],
        )
        .values_list('product_code', flat=True)
    )
    for code in list(order_codes) + list(reorder_codes):
        if extract_dose(code) in tiers:
            return True
    return False


def last_paid_dose(patient, exclude_reorder_id=None):
    """上一次付款的剂量（再处方优先，其次订单），用于生成病历"""
    reorders = (
        ReorderRequest.objects
        .filter(patient=patient, status=ReorderRequest.STATUS_PAID)
        .order_by('-paid_at', '-id')
    )
    if exclude_reorder_id is not None:
        reorders = reorders.exclude(id=exclude_reorder_id)
    code = reorders.values_list('product_code', flat=True).first()
    if code is None:
        code = (
            Order.objects
            .filter(patient=patient)
            .order_by('-created_at', '-id')
            .values_list('product_code', flat=True)
            .first()
        )
    return extract_dose(code)
