from django.contrib import admin
from django.urls import path

from clinic import views
from clinic.views_metrics import metrics

urlpatterns = [
    path('admin/', admin.site.urls),
    path('metrics', metrics, name='metrics'),
    path('api/reorder/apply/', views.apply_reorder, name='reorder_apply'),
    path('api/reorder/<str:reorder_id>/cancel/', views.cancel_reorder, name='reorder_cancel'),
    path('api/admin/reorders/', views.admin_list_reorders, name='admin_reorders'),
    path('api/admin/reorders/approve/', views.admin_approve_reorder, name='admin_reorder_approve'),
    path('api/admin/reorders/reject/', views.admin_reject_reorder, name='admin_reorder_reject'),
    path('api/admin/menu-rules/', views.admin_menu_rules, name='admin_menu_rules'),
    path('api/admin/menu-rules/evaluate/', views.admin_evaluate_menu_rules, name='admin_menu_rules_evaluate'),
    path('api/payments/<str:gateway>/webhook/', views.payment_webhook, name='payment_webhook'),
]
