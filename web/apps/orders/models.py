import uuid

from django.db import models, transaction


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Internal incremental counter
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)
    order_number = models.CharField(max_length=32, unique=True)

    class Status(models.TextChoices):
        PENDING = "pending"
        PAID = "paid"
        PENDING_COMMIT = "pending_commit"
        COMMITTED = "committed"
        SHIPPED = "shipped"
        DELIVERED = "delivered"
        CANCELLED = "cancelled"
        DECLINED = "declined"

    ACTIVE = [Status.PENDING, Status.PAID, Status.PENDING_COMMIT, Status.COMMITTED]

    # Party snapshots
    buyer_id = models.CharField(max_length=64, db_index=True)
    buyer_name = models.CharField(max_length=200, blank=True, default="")
    buyer_email = models.CharField(max_length=254, blank=True, default="")
    buyer_phone = models.CharField(max_length=32, blank=True, default="")
    seller_id = models.CharField(max_length=64, db_index=True)
    seller_name = models.CharField(max_length=200, blank=True, default="")
    seller_email = models.CharField(max_length=254, blank=True, default="")
    seller_phone = models.CharField(max_length=32, blank=True, default="")

    # Item snapshot
    item_id = models.CharField(max_length=64, db_index=True)
    item_title = models.CharField(max_length=300, blank=True, default="")
    item_price_cents = models.PositiveIntegerField(default=0)
    item_condition = models.CharField(max_length=64, blank=True, default="")
    item_author = models.CharField(max_length=200, blank=True, default="")

    # Fulfillment: address reference XOR locker per side
    pickup_type = models.CharField(max_length=8, default="door")
    pickup_address_ref = models.CharField(max_length=64, null=True, blank=True)
    pickup_locker_id = models.CharField(max_length=64, null=True, blank=True)
    pickup_locker_provider = models.CharField(max_length=64, null=True, blank=True)
    delivery_type = models.CharField(max_length=8, default="door")
    delivery_address_ref = models.CharField(max_length=64, null=True, blank=True)
    delivery_locker_id = models.CharField(max_length=64, null=True, blank=True)
    delivery_locker_provider = models.CharField(max_length=64, null=True, blank=True)

    payment_reference = models.CharField(max_length=128, unique=True, null=True, blank=True)
    courier = models.JSONField(null=True, blank=True)
    total_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="ZAR")
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(max_length=32, null=True, blank=True)
    delivery_status = models.CharField(max_length=64, null=True, blank=True)
    inventory_snapshot = models.JSONField(null=True, blank=True)

    shipment = models.JSONField(null=True, blank=True)
    tracking_number = models.CharField(max_length=128, null=True, blank=True, db_index=True)
    shipment_cancel_error = models.TextField(null=True, blank=True)

    cancellation_reason = models.TextField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refund_status = models.CharField(max_length=32, null=True, blank=True)
    refund_id = models.CharField(max_length=64, null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    decline_reason = models.TextField(null=True, blank=True)
    declined_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    committed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "orders"
        ordering = ["-internal_id"]
        constraints = [
            # at most one active order per (buyer, seller, item)
            models.UniqueConstraint(
                fields=["buyer_id", "seller_id", "item_id"],
                condition=models.Q(status__in=["pending", "paid", "pending_commit", "committed"]),
                name="uniq_active_order_per_item",
            ),
        ]

    def save(self, *args, **kwargs):
        # Assign incremental `internal_id` only on creation
        if self.internal_id is None:
            with transaction.atomic():
                last = (
                    OrderModel.objects.select_for_update()
                    .order_by("-internal_id")
                    .first()
                )
                self.internal_id = 1 if not last or last.internal_id is None else last.internal_id + 1

        super().save(*args, **kwargs)


class Profile(models.Model):
    """User directory entry: contact details, role and fulfillment preferences."""

    user_id = models.CharField(max_length=64, primary_key=True)
    full_name = models.CharField(max_length=200, blank=True, default="")
    email = models.CharField(max_length=254, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    role = models.CharField(max_length=16, default="user")
    pickup_address_ref = models.CharField(max_length=64, null=True, blank=True)
    shipping_address_ref = models.CharField(max_length=64, null=True, blank=True)
    preferred_locker_id = models.CharField(max_length=64, null=True, blank=True)
    preferred_locker_provider = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        db_table = "profiles"


class SavedAddress(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    street_address = models.CharField(max_length=300)
    city = models.CharField(max_length=120)
    province = models.CharField(max_length=120)
    postal_code = models.CharField(max_length=16)
    local_area = models.CharField(max_length=120, blank=True, default="")
    company = models.CharField(max_length=200, blank=True, default="")
    country = models.CharField(max_length=2, default="ZA")

    class Meta:
        db_table = "saved_addresses"


class OrderNotification(models.Model):
    user_id = models.CharField(max_length=64, db_index=True)
    order_id = models.CharField(max_length=64, null=True, blank=True)
    kind = models.CharField(max_length=64)
    title = models.CharField(max_length=200)
    message = models.TextField()
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_notifications"
        ordering = ["-created_at"]
