from django.contrib import admin

from .models import AuditLog, Intake, Order, Patient, ReorderRequest, TenantSetting


@admin.register(ReorderRequest)
class ReorderRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'reorder_number', 'patient', 'product_code', 'status', 'created_at')
    list_filter = ('status', 'tenant_id')
    search_fields = ('patient__patient_id', 'patient__name', 'product_code')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('patient_id', 'name', 'tenant_id', 'mark', 'current_rich_menu_id')
    search_fields = ('patient_id', 'name', 'line_uid')


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'resource_type', 'resource_id', 'actor')
    list_filter = ('action',)


admin.site.register(Intake)
admin.site.register(Order)
admin.site.register(TenantSetting)
