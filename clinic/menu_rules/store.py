"""
规则持久化：整个有序列表作为一个 JSON 存在 TenantSetting(category="line", key="menu_auto_rules")
每次保存 version + 1；传入 expected_version 时做乐观并发检查
"""
import logging

from django.db import transaction

from clinic.models import TenantSetting
from clinic_ops.exceptions import BlockError

from .types import MenuRuleSet

logger = logging.getLogger(__name__)

SETTING_CATEGORY = "line"
SETTING_KEY = "menu_auto_rules"


def load_rule_set(tenant_id) -> MenuRuleSet:
    value = (
        TenantSetting.objects
        .filter(tenant_id=tenant_id, category=SETTING_CATEGORY, key=SETTING_KEY)
        .values_list("value", flat=True)
        .first()
    )
    return MenuRuleSet.from_value(value)


def save_rules(tenant_id, rules, expected_version=None) -> MenuRuleSet:
    with transaction.atomic():
        row, _ = (
            TenantSetting.objects
            .select_for_update()
            .get_or_create(
                tenant_id=tenant_id,
                category=SETTING_CATEGORY,
                key=SETTING_KEY,
                defaults={"value": MenuRuleSet().to_value()},
            )
        )
        current = MenuRuleSet.from_value(row.value)
        if expected_version is not None and int(expected_version) != current.version:
            raise BlockError(
                message="メニュールールが他の操作で更新されています。再読み込みしてください。",
                code="VERSION_CONFLICT",
                detail={"expected_version": expected_version, "current_version": current.version},
            )
        rule_set = MenuRuleSet(version=current.version + 1, rules=list(rules))
        row.value = rule_set.to_value()
        row.save(update_fields=["value", "updated_at"])

    logger.info("menu rules saved: tenant=%s version=%s rules=%s", tenant_id, rule_set.version, len(rule_set.rules))
    return rule_set
