import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("actor", models.CharField(blank=True, max_length=100)),
                ("action", models.CharField(max_length=100)),
                ("resource_type", models.CharField(max_length=50)),
                ("resource_id", models.CharField(max_length=64)),
                ("details", models.JSONField(default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="FriendField",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("name", models.CharField(max_length=100)),
            ],
        ),
        migrations.CreateModel(
            name="Tag",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("name", models.CharField(max_length=100)),
            ],
        ),
        migrations.CreateModel(
            name="TenantSetting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.CharField(max_length=64)),
                ("category", models.CharField(max_length=50)),
                ("key", models.CharField(max_length=100)),
                ("value", models.JSONField(default=dict)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Patient",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("patient_id", models.CharField(max_length=64)),
                ("name", models.CharField(blank=True, max_length=200)),
                ("line_uid", models.CharField(blank=True, max_length=64)),
                ("mark", models.CharField(blank=True, max_length=50)),
                ("current_rich_menu_id", models.CharField(blank=True, max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="Intake",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("status", models.CharField(blank=True, max_length=20, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("patient", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="intakes", to="clinic.patient",
                )),
            ],
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("product_code", models.CharField(max_length=100)),
                ("payment_id", models.CharField(blank=True, max_length=100)),
                ("shipping_date", models.DateField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("patient", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="orders", to="clinic.patient",
                )),
            ],
        ),
        migrations.CreateModel(
            name="PatientFieldValue",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("value", models.TextField(blank=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("field", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="clinic.friendfield")),
                ("patient", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="field_values", to="clinic.patient",
                )),
            ],
        ),
        migrations.CreateModel(
            name="PatientTag",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("patient", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="clinic.patient")),
                ("tag", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="clinic.tag")),
            ],
        ),
        migrations.AddField(
            model_name="patient",
            name="tags",
            field=models.ManyToManyField(related_name="patients", through="clinic.PatientTag", to="clinic.tag"),
        ),
        migrations.CreateModel(
            name="ReorderRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("product_code", models.CharField(max_length=100)),
                ("reorder_number", models.PositiveIntegerField()),
                ("status", models.CharField(
                    choices=[
                        ("pending", "Pending"),
                        ("confirmed", "Confirmed"),
                        ("paid", "Paid"),
                        ("rejected", "Rejected"),
                        ("canceled", "Canceled"),
                    ],
                    default="pending",
                    max_length=20,
                )),
                ("karte_note", models.TextField(blank=True, null=True)),
                ("line_uid", models.CharField(blank=True, max_length=64)),
                ("rejection_reason", models.TextField(blank=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("patient", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="reorders", to="clinic.patient",
                )),
            ],
        ),
        migrations.AddConstraint(
            model_name="patient",
            constraint=models.UniqueConstraint(fields=("tenant_id", "patient_id"), name="uniq_patient_per_tenant"),
        ),
        migrations.AddConstraint(
            model_name="patienttag",
            constraint=models.UniqueConstraint(fields=("patient", "tag"), name="uniq_patient_tag"),
        ),
        migrations.AddConstraint(
            model_name="patientfieldvalue",
            constraint=models.UniqueConstraint(fields=("patient", "field"), name="uniq_patient_field"),
        ),
        migrations.AddConstraint(
            model_name="tenantsetting",
            constraint=models.UniqueConstraint(
                fields=("tenant_id", "category", "key"), name="uniq_tenant_setting",
            ),
        ),
        # 每个患者最多一条未处理（pending / confirmed）的再处方申请
        migrations.AddConstraint(
            model_name="reorderrequest",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status__in", ["pending", "confirmed"])),
                fields=("patient",),
                name="one_open_reorder_per_patient",
            ),
        ),
        migrations.AddConstraint(
            model_name="reorderrequest",
            constraint=models.UniqueConstraint(
                fields=("patient", "reorder_number"), name="uniq_reorder_number_per_patient",
            ),
        ),
    ]
