"""
Menu auto-assignment: condition matching, rule ordering, persistence, and rich menu switching.
"""
import json

import pytest
from django.core.management import call_command
from django.test import Client

from clinic.menu_rules import (
    FieldCondition,
    MarkCondition,
    MenuRule,
    MenuRuleSet,
    PatientSnapshot,
    TagCondition,
    apply_menu_rules,
    build_snapshot,
    load_rule_set,
    match_field_value,
    matches_condition,
    matches_rule,
    save_rules,
    select_rule,
)
from clinic.menu_rules.types import parse_condition
from clinic.models import FriendField, Patient, PatientFieldValue, PatientTag, Tag
from clinic_ops.exceptions import BlockError, ValidationError

SNAPSHOT = PatientSnapshot(tag_ids=frozenset({1, 2, 3}), mark="対応済み", fields={10: "Tokyo", 20: "100"})


def _rule(rule_id, priority, conditions, enabled=True, operator="AND", target=None):
    return MenuRule(
        id=str(rule_id),
        name=f"rule {rule_id}",
        conditions=conditions,
        target_menu_id=target or f"richmenu-{rule_id}",
        condition_operator=operator,
        priority=priority,
        enabled=enabled,
    )


class TestMatchFieldValue:

    def test_equality(self):
        assert match_field_value("Tokyo", "=", "Tokyo") is True
        assert match_field_value("Tokyo", "=", "Osaka") is False
        assert match_field_value("Tokyo", "!=", "Osaka") is True

    def test_contains(self):
        assert match_field_value("東京都渋谷区", "contains", "渋谷") is True
        assert match_field_value("東京都渋谷区", "contains", "新宿") is False

    def test_numeric_comparison_when_both_parse(self):
        assert match_field_value("10", ">", "9") is True
        assert match_field_value("50", ">", "50") is False
        assert match_field_value("50", "<", "100") is True

    def test_lexicographic_fallback(self):
        assert match_field_value("b", ">", "a") is True
        assert match_field_value("a", ">", "b") is False

    def test_empty_actual_is_not_numeric(self):
        assert match_field_value("", ">", "100") is False

    def test_unknown_operator(self):
        assert match_field_value("a", "like", "a") is False


class TestMatchesCondition:

    def test_tag_any(self):
        assert matches_condition(TagCondition(tag_ids=(1, 5)), SNAPSHOT) is True
        assert matches_condition(TagCondition(tag_ids=(4, 5)), SNAPSHOT) is False

    def test_tag_all(self):
        assert matches_condition(TagCondition(tag_ids=(1, 2), match="all"), SNAPSHOT) is True
        assert matches_condition(TagCondition(tag_ids=(1, 4), match="all"), SNAPSHOT) is False

    def test_empty_tag_list_never_matches(self):
        assert matches_condition(TagCondition(tag_ids=(), match="all"), SNAPSHOT) is False

    def test_mark(self):
        assert matches_condition(MarkCondition(values=("対応済み", "確認中")), SNAPSHOT) is True
        assert matches_condition(MarkCondition(values=("未対応",)), SNAPSHOT) is False

    def test_field(self):
        assert matches_condition(FieldCondition(field_id=20, operator=">", value="50"), SNAPSHOT) is True

    def test_missing_field_compares_as_empty(self):
        assert matches_condition(FieldCondition(field_id=999, operator="=", value=""), SNAPSHOT) is True


class TestMatchesRule:

    def test_empty_conditions_never_match(self):
        assert matches_rule(_rule(1, 1, [], operator="AND"), SNAPSHOT) is False
        assert matches_rule(_rule(1, 1, [], operator="OR"), SNAPSHOT) is False

    def test_and_requires_all(self):
        rule = _rule(1, 1, [TagCondition(tag_ids=(1,)), MarkCondition(values=("未対応",))])
        assert matches_rule(rule, SNAPSHOT) is False

    def test_or_requires_one(self):
        rule = _rule(1, 1, [TagCondition(tag_ids=(9,)), MarkCondition(values=("対応済み",))], operator="OR")
        assert matches_rule(rule, SNAPSHOT) is True


class TestSelectRule:

    def test_priority_order(self):
        always = [MarkCondition(values=("対応済み",))]
        rules = [
            _rule("p3", 3, always),
            _rule("p1", 1, always),
            _rule("p2", 2, always),
        ]
        assert select_rule(rules, SNAPSHOT).id == "p1"

    def test_disabled_rule_skipped_even_when_it_matches(self):
        always = [MarkCondition(values=("対応済み",))]
        rules = [
            _rule("p3", 3, always),
            _rule("p1", 1, [MarkCondition(values=("未対応",))]),
            _rule("p2", 2, always, enabled=False),
        ]
        assert select_rule(rules, SNAPSHOT).id == "p3"

    def test_falls_through_to_lower_priority(self):
        rules = [
            _rule("high", 1, [MarkCondition(values=("未対応",))]),
            _rule("low", 5, [TagCondition(tag_ids=(2,))]),
        ]
        assert select_rule(rules, SNAPSHOT).id == "low"

    def test_no_match(self):
        assert select_rule([_rule(1, 1, [])], SNAPSHOT) is None


class TestParsing:

    def test_round_trip_of_stored_format(self):
        stored = {
            "id": "r1",
            "name": "VIP",
            "conditions": [
                {"type": "tag", "tag_ids": [1, 2], "tag_match": "all"},
                {"type": "field", "field_id": 10, "field_operator": "contains", "field_value": "東京"},
            ],
            "conditionOperator": "OR",
            "target_menu_id": "richmenu-abc",
            "priority": 2,
            "enabled": False,
        }
        rule = MenuRule.from_dict(stored)
        assert rule.conditions[0] == TagCondition(tag_ids=(1, 2), match="all")
        assert rule.condition_operator == "OR"
        assert rule.enabled is False
        assert rule.to_dict() == stored

    def test_unknown_condition_type_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_condition({"type": "behavior"})
        assert exc_info.value.code == "INVALID_MENU_RULES"

    def test_missing_target_rejected(self):
        with pytest.raises(ValidationError):
            MenuRule.from_dict({"conditions": []})

    def test_legacy_bare_list(self):
        rule_set = MenuRuleSet.from_value([{"target_menu_id": "m1", "conditions": []}])
        assert rule_set.version == 0
        assert rule_set.rules[0].target_menu_id == "m1"


@pytest.mark.django_db
class TestStore:

    def test_empty_by_default(self, tenant_id):
        rule_set = load_rule_set(tenant_id)
        assert rule_set.version == 0
        assert rule_set.rules == []

    def test_save_increments_version(self, tenant_id):
        save_rules(tenant_id, [_rule(1, 1, [MarkCondition(values=("a",))])])
        saved = save_rules(tenant_id, [_rule(2, 1, [])])
        assert saved.version == 2
        loaded = load_rule_set(tenant_id)
        assert loaded.version == 2
        assert [r.id for r in loaded.rules] == ["2"]

    def test_stale_version_conflicts(self, tenant_id):
        save_rules(tenant_id, [])
        with pytest.raises(BlockError) as exc_info:
            save_rules(tenant_id, [], expected_version=0)
        assert exc_info.value.code == "VERSION_CONFLICT"

    def test_tenants_are_isolated(self, tenant_id):
        save_rules("other-tenant", [_rule(1, 1, [])])
        assert load_rule_set(tenant_id).rules == []


@pytest.mark.django_db
class TestApplyMenuRules:

    def _tag(self, patient, name):
        tag = Tag.objects.create(tenant_id=patient.tenant_id, name=name)
        PatientTag.objects.create(patient=patient, tag=tag)
        return tag

    def test_build_snapshot(self, patient):
        tag = self._tag(patient, "VIP")
        field = FriendField.objects.create(tenant_id=patient.tenant_id, name="都道府県")
        PatientFieldValue.objects.create(patient=patient, field=field, value="東京")
        patient.mark = "対応済み"
        patient.save()

        snapshot = build_snapshot(patient)
        assert snapshot.tag_ids == frozenset({tag.id})
        assert snapshot.mark == "対応済み"
        assert snapshot.fields == {field.id: "東京"}

    def test_links_matching_menu(self, patient, tenant_id, mock_line):
        tag = self._tag(patient, "VIP")
        save_rules(tenant_id, [_rule("vip", 1, [TagCondition(tag_ids=(tag.id,))], target="richmenu-vip")])

        rule = apply_menu_rules(tenant_id, patient.patient_id)

        assert rule.id == "vip"
        assert list(mock_line.linked) == [{"user_id": "U-patient-1", "rich_menu_id": "richmenu-vip"}]
        patient.refresh_from_db()
        assert patient.current_rich_menu_id == "richmenu-vip"

    def test_same_menu_is_not_relinked(self, patient, tenant_id, mock_line):
        patient.mark = "対応済み"
        patient.current_rich_menu_id = "richmenu-done"
        patient.save()
        save_rules(tenant_id, [_rule("done", 1, [MarkCondition(values=("対応済み",))], target="richmenu-done")])

        assert apply_menu_rules(tenant_id, patient.patient_id).id == "done"
        assert list(mock_line.linked) == []

    def test_patient_without_line_uid(self, patient, tenant_id, mock_line):
        Patient.objects.filter(pk=patient.pk).update(line_uid="", mark="x")
        save_rules(tenant_id, [_rule("x", 1, [MarkCondition(values=("x",))])])

        assert apply_menu_rules(tenant_id, patient.patient_id).id == "x"
        assert list(mock_line.linked) == []

    def test_unknown_patient(self, tenant_id):
        assert apply_menu_rules(tenant_id, "nobody") is None


@pytest.mark.django_db
class TestMenuRuleViews:

    def test_put_then_get(self, admin_headers):
        client = Client()
        payload = {"rules": [{
            "id": "r1",
            "conditions": [{"type": "mark", "mark_values": ["対応済み"]}],
            "conditionOperator": "AND",
            "target_menu_id": "richmenu-1",
            "priority": 1,
        }]}
        resp = client.put(
            "/api/admin/menu-rules/",
            data=json.dumps(payload),
            content_type="application/json",
            **admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["version"] == 1

        resp = client.get("/api/admin/menu-rules/", **admin_headers)
        data = resp.json()["data"]
        assert data["rules"][0]["target_menu_id"] == "richmenu-1"

    def test_invalid_rules_rejected(self, admin_headers):
        resp = Client().put(
            "/api/admin/menu-rules/",
            data=json.dumps({"rules": [{"target_menu_id": "m", "conditions": [{"type": "weird"}]}]}),
            content_type="application/json",
            **admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_MENU_RULES"

    def test_requires_admin_token(self):
        resp = Client().get("/api/admin/menu-rules/")
        assert resp.status_code == 401

    def test_evaluate_dry_run(self, patient, tenant_id, admin_headers, mock_line):
        Patient.objects.filter(pk=patient.pk).update(mark="対応済み")
        save_rules(tenant_id, [_rule("done", 1, [MarkCondition(values=("対応済み",))])])

        resp = Client().post(
            "/api/admin/menu-rules/evaluate/",
            data=json.dumps({"patient_id": patient.patient_id}),
            content_type="application/json",
            **admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["rule"]["id"] == "done"
        assert list(mock_line.linked) == []


@pytest.mark.django_db
class TestSyncRichMenusCommand:

    def test_applies_rules_to_every_patient(self, patient, other_patient, tenant_id, mock_line):
        Patient.objects.filter(tenant_id=tenant_id).update(mark="対応済み")
        save_rules(tenant_id, [_rule("done", 1, [MarkCondition(values=("対応済み",))], target="richmenu-done")])

        call_command("sync_rich_menus", tenant=tenant_id)

        assert {l["user_id"] for l in mock_line.linked} == {"U-patient-1", "U-patient-2"}

    def test_dry_run_does_not_link(self, patient, tenant_id, mock_line):
        Patient.objects.filter(pk=patient.pk).update(mark="対応済み")
        save_rules(tenant_id, [_rule("done", 1, [MarkCondition(values=("対応済み",))])])

        call_command("sync_rich_menus", tenant=tenant_id, dry_run=True)

        assert list(mock_line.linked) == []
