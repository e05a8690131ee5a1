import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="EventModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                (
                    "kind",
                    models.CharField(
                        choices=[("normal", "Normal"), ("merchandise", "Merchandise")],
                        default="normal",
                        max_length=16,
                    ),
                ),
                ("eligibility", models.CharField(default="all", max_length=32)),
                ("registration_open", models.BooleanField(default=False)),
                ("registration_deadline", models.DateTimeField(blank=True, null=True)),
                ("starts_at", models.DateTimeField(blank=True, null=True)),
                ("ends_at", models.DateTimeField(blank=True, null=True)),
                ("registration_fee", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("capacity_limit", models.PositiveIntegerField()),
                ("capacity_used", models.PositiveIntegerField(default=0)),
                ("form_fields", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "events",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("capacity_used__lte", models.F("capacity_limit"))),
                        name="events_capacity_within_limit",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MerchItemModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("required", models.BooleanField(default=False)),
                ("position", models.PositiveIntegerField(default=0)),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="registrations.eventmodel",
                    ),
                ),
            ],
            options={
                "db_table": "merch_items",
                "ordering": ["position", "id"],
            },
        ),
        migrations.CreateModel(
            name="VariantModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("label", models.CharField(max_length=255)),
                ("price", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("stock", models.PositiveIntegerField(default=0)),
                ("position", models.PositiveIntegerField(default=0)),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="variants",
                        to="registrations.eventmodel",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="variants",
                        to="registrations.merchitemmodel",
                    ),
                ),
            ],
            options={
                "db_table": "merch_variants",
                "ordering": ["position", "id"],
            },
        ),
        migrations.CreateModel(
            name="RegistrationModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("participant_id", models.CharField(max_length=64)),
                ("contact_email", models.EmailField(blank=True, default="", max_length=254)),
                ("ticket_code", models.CharField(max_length=64, unique=True)),
                (
                    "payment_state",
                    models.CharField(
                        choices=[
                            ("not_required", "Not Required"),
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                        ],
                        default="not_required",
                        max_length=16,
                    ),
                ),
                ("payment_proof", models.URLField(blank=True, default="", max_length=500)),
                ("payment_comment", models.TextField(blank=True, default="")),
                ("amount_due", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("committed_items", models.JSONField(blank=True, default=dict)),
                ("form_responses", models.JSONField(blank=True, default=dict)),
                ("ticket_artifact", models.TextField(blank=True, default="")),
                ("inventory_held", models.BooleanField(default=True)),
                ("attended", models.BooleanField(default=False)),
                ("attended_at", models.DateTimeField(blank=True, null=True)),
                ("registered_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="registrations.eventmodel",
                    ),
                ),
            ],
            options={
                "db_table": "registrations",
                "ordering": ["-registered_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("event", "participant_id"), name="registrations_one_per_participant"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("key", models.CharField(max_length=200, primary_key=True, serialize=False)),
                ("request_hash", models.CharField(max_length=64)),
                ("response_status", models.PositiveIntegerField(default=0)),
                ("response_body", models.JSONField(default=dict)),
                ("registration_id", models.UUIDField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "idempotency_keys",
            },
        ),
    ]
