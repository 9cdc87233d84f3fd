"""
按当前规则重新评估租户下所有患者的富菜单（规则修改后批量同步）
运行: python manage.py sync_rich_menus --tenant <tenant_id> [--dry-run]
"""
import time

from django.conf import settings
from django.core.management.base import BaseCommand

from clinic import statsd_metrics
from clinic.menu_rules import apply_menu_rules, load_rule_set
from clinic.menu_rules.service import evaluate_patient
from clinic.models import Patient


class Command(BaseCommand):
    help = '按菜单自动切换规则，重新绑定租户内所有患者的 LINE 富菜单'

    def add_arguments(self, parser):
        parser.add_argument('--tenant', default=None, help='租户 ID（默认 DEFAULT_TENANT_ID）')
        parser.add_argument('--dry-run', action='store_true', help='只评估，不调用 LINE')

    def handle(self, *args, **options):
        tenant_id = options['tenant'] or settings.DEFAULT_TENANT_ID
        dry_run = options['dry_run']
        rule_set = load_rule_set(tenant_id)
        if not rule_set.rules:
            self.stdout.write(f'租户 {tenant_id} 没有菜单规则，跳过')
            return

        start = time.perf_counter()
        matched = 0
        total = 0
        patients = Patient.objects.filter(tenant_id=tenant_id).order_by('id')
        for patient in patients.iterator():
            total += 1
            if dry_run:
                rule = evaluate_patient(patient, rule_set)
            else:
                rule = apply_menu_rules(tenant_id, patient.patient_id, rule_set=rule_set)
            if rule is not None:
                matched += 1
                self.stdout.write(f'{patient.patient_id} → {rule.target_menu_id} ({rule.name or rule.id})')

        if not dry_run:
            statsd_metrics.rich_menu_sync_duration_seconds(time.perf_counter() - start)
        self.stdout.write(self.style.SUCCESS(
            f'完成：{total} 人中 {matched} 人匹配规则 (version={rule_set.version})'
        ))
