from django.db import models
from django.db.models import Q

"""
所有业务表都带 tenant_id（诊所 / 组织的隔离边界）
"""


class Patient(models.Model):
    """
    Patient字段:
    tenant_id; patient_id(租户内唯一的业务 ID); name; line_uid(LINE 用户 ID)
    mark(对应状态标记); current_rich_menu_id(当前绑定的 LINE 富菜单)
    tags(多对多 → Tag)
    """
    tenant_id = models.CharField(max_length=64, db_index=True)
    patient_id = models.CharField(max_length=64)
    name = models.CharField(max_length=200, blank=True)
    line_uid = models.CharField(max_length=64, blank=True)
    mark = models.CharField(max_length=50, blank=True)
    current_rich_menu_id = models.CharField(max_length=100, blank=True)
    tags = models.ManyToManyField('Tag', through='PatientTag', related_name='patients')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['tenant_id', 'patient_id'], name='uniq_patient_per_tenant'),
        ]

    def __str__(self):
        return f"{self.name or '-'} ({self.patient_id})"


class Intake(models.Model):
    """
    问诊记录：status 为 "NG" 表示医生判定不可处方；null 表示尚未判定
    """
    tenant_id = models.CharField(max_length=64, db_index=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='intakes')
    status = models.CharField(max_length=20, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Intake {self.id} for {self.patient_id} ({self.status})"


class Order(models.Model):
    """
    已付款的处方订单（初诊 + 再处方付款后都会落在这里），用于处方历史
    """
    tenant_id = models.CharField(max_length=64, db_index=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='orders')
    product_code = models.CharField(max_length=100)
    payment_id = models.CharField(max_length=100, blank=True)
    shipping_date = models.DateField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Order {self.id} - {self.product_code}"


class ReorderRequest(models.Model):
    """
    再处方申请
    reorder_number：每个患者单调递增，从 2 开始（1 留给初诊/预约关联的订单）
    karte_note：写入一次后不再覆盖
    """
    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_PAID = 'paid'
    STATUS_REJECTED = 'rejected'
    STATUS_CANCELED = 'canceled'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_PAID, 'Paid'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_CANCELED, 'Canceled'),
    ]
    OPEN_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)
    TERMINAL_STATUSES = (STATUS_PAID, STATUS_REJECTED, STATUS_CANCELED)

    tenant_id = models.CharField(max_length=64, db_index=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='reorders')
    product_code = models.CharField(max_length=100)
    reorder_number = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    karte_note = models.TextField(null=True, blank=True)
    line_uid = models.CharField(max_length=64, blank=True)
    rejection_reason = models.TextField(blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['patient'],
                condition=Q(status__in=['pending', 'confirmed']),
                name='one_open_reorder_per_patient',
            ),
            models.UniqueConstraint(
                fields=['patient', 'reorder_number'],
                name='uniq_reorder_number_per_patient',
            ),
        ]

    def __str__(self):
        return f"Reorder #{self.reorder_number} for {self.patient_id} ({self.status})"


class Tag(models.Model):
    tenant_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=100)

    def __str__(self):
        return self.name


class PatientTag(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE)
    tag = models.ForeignKey(Tag, on_delete=models.CASCADE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['patient', 'tag'], name='uniq_patient_tag'),
        ]


class FriendField(models.Model):
    """LINE 好友的自定义信息栏位定义"""
    tenant_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=100)

    def __str__(self):
        return self.name


class PatientFieldValue(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='field_values')
    field = models.ForeignKey(FriendField, on_delete=models.CASCADE)
    value = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['patient', 'field'], name='uniq_patient_field'),
        ]


class TenantSetting(models.Model):
    """
    租户级配置：(category, key) → JSON 值
    比环境变量优先；菜单自动切换规则也存在这里
    """
    tenant_id = models.CharField(max_length=64)
    category = models.CharField(max_length=50)
    key = models.CharField(max_length=100)
    value = models.JSONField(default=dict)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['tenant_id', 'category', 'key'], name='uniq_tenant_setting'),
        ]

    def __str__(self):
        return f"{self.tenant_id}:{self.category}.{self.key}"


class AuditLog(models.Model):
    tenant_id = models.CharField(max_length=64, db_index=True)
    actor = models.CharField(max_length=100, blank=True)
    action = models.CharField(max_length=100)
    resource_type = models.CharField(max_length=50)
    resource_id = models.CharField(max_length=64)
    details = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.action} {self.resource_type}:{self.resource_id}"
