import uuid

from django.db import models
from django.db.models import F, Q


class EventModel(models.Model):
    """Event row. Owned by event management; the engine only moves ``capacity_used``."""

    class Kind(models.TextChoices):
        NORMAL = "normal"
        MERCHANDISE = "merchandise"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    kind = models.CharField(max_length=16, choices=Kind.choices, default=Kind.NORMAL)
    eligibility = models.CharField(max_length=32, default="all")
    registration_open = models.BooleanField(default=False)
    registration_deadline = models.DateTimeField(null=True, blank=True)
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)
    registration_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    capacity_limit = models.PositiveIntegerField()
    capacity_used = models.PositiveIntegerField(default=0)
    # [{"id": "...", "label": "...", "required": bool, "field_type": "text"}]
    form_fields = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "events"
        constraints = [
            models.CheckConstraint(
                condition=Q(capacity_used__lte=F("capacity_limit")),
                name="events_capacity_within_limit",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class MerchItemModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(EventModel, on_delete=models.CASCADE, related_name="items")
    name = models.CharField(max_length=255)
    required = models.BooleanField(default=False)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "merch_items"
        ordering = ["position", "id"]


class VariantModel(models.Model):
    # ``event`` is denormalised so the stock guard is a single-table update
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(EventModel, on_delete=models.CASCADE, related_name="variants")
    item = models.ForeignKey(MerchItemModel, on_delete=models.CASCADE, related_name="variants")
    label = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    stock = models.PositiveIntegerField(default=0)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "merch_variants"
        ordering = ["position", "id"]


class RegistrationModel(models.Model):
    class PaymentState(models.TextChoices):
        NOT_REQUIRED = "not_required"
        PENDING = "pending"
        APPROVED = "approved"
        REJECTED = "rejected"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(EventModel, on_delete=models.CASCADE, related_name="registrations")
    participant_id = models.CharField(max_length=64)
    contact_email = models.EmailField(blank=True, default="")
    ticket_code = models.CharField(max_length=64, unique=True)
    payment_state = models.CharField(
        max_length=16, choices=PaymentState.choices, default=PaymentState.NOT_REQUIRED
    )
    payment_proof = models.URLField(max_length=500, blank=True, default="")
    payment_comment = models.TextField(blank=True, default="")
    amount_due = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    # {item_id: {"item_name", "variant_id", "variant_label", "price"}}
    committed_items = models.JSONField(default=dict, blank=True)
    form_responses = models.JSONField(default=dict, blank=True)
    ticket_artifact = models.TextField(blank=True, default="")
    inventory_held = models.BooleanField(default=True)
    attended = models.BooleanField(default=False)
    attended_at = models.DateTimeField(null=True, blank=True)
    registered_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "registrations"
        ordering = ["-registered_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["event", "participant_id"], name="registrations_one_per_participant"
            ),
        ]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    registration_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
