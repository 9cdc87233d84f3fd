"""
把规则应用到患者：读状态 → 评估 → 需要时切换 LINE 富菜单
"""
import logging
import time

from clinic import statsd_metrics
from clinic.messaging import MessagingError, get_messaging_service
from clinic.metrics import MENU_RULE_EVALUATION
from clinic.models import Patient, PatientFieldValue

from .engine import select_rule
from .store import load_rule_set
from .types import PatientSnapshot

logger = logging.getLogger(__name__)


def build_snapshot(patient) -> PatientSnapshot:
    tag_ids = frozenset(patient.tags.values_list("id", flat=True))
    fields = dict(
        PatientFieldValue.objects
        .filter(patient=patient)
        .values_list("field_id", "value")
    )
    return PatientSnapshot(tag_ids=tag_ids, mark=patient.mark or "", fields=fields)


def evaluate_patient(patient, rule_set=None):
    """只评估，不切换菜单；返回匹配的规则或 None"""
    if rule_set is None:
        rule_set = load_rule_set(patient.tenant_id)
    rule = select_rule(rule_set.rules, build_snapshot(patient))
    MENU_RULE_EVALUATION.labels(matched="true" if rule else "false").inc()
    return rule


def apply_menu_rules(tenant_id, patient_id, rule_set=None):
    """
    评估并切换菜单
    - 没有 LINE uid / 目标菜单与当前一致 → 不调用 LINE
    - LINE 调用失败只记日志，返回值仍是匹配到的规则
    """
    patient = Patient.objects.filter(tenant_id=tenant_id, patient_id=patient_id).first()
    if patient is None:
        logger.warning("menu rules skipped, patient not found: tenant=%s patient=%s", tenant_id, patient_id)
        return None

    rule = evaluate_patient(patient, rule_set)
    if rule is None:
        return None
    if not patient.line_uid or rule.target_menu_id == patient.current_rich_menu_id:
        return rule

    start = time.perf_counter()
    try:
        get_messaging_service("patient", tenant_id).link_rich_menu(patient.line_uid, rule.target_menu_id)
    except MessagingError:
        logger.exception(
            "rich menu link failed: patient=%s rule=%s menu=%s",
            patient_id, rule.id, rule.target_menu_id,
        )
        return rule

    Patient.objects.filter(pk=patient.pk).update(current_rich_menu_id=rule.target_menu_id)
    statsd_metrics.rich_menu_linked()
    statsd_metrics.line_push_latency_seconds(time.perf_counter() - start)
    logger.info("rich menu switched: patient=%s rule=%s menu=%s", patient_id, rule.id, rule.target_menu_id)
    return rule
