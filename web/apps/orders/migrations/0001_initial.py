import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("internal_id", models.BigIntegerField(editable=False, null=True, unique=True)),
                ("order_number", models.CharField(max_length=32, unique=True)),
                ("buyer_id", models.CharField(db_index=True, max_length=64)),
                ("buyer_name", models.CharField(blank=True, default="", max_length=200)),
                ("buyer_email", models.CharField(blank=True, default="", max_length=254)),
                ("buyer_phone", models.CharField(blank=True, default="", max_length=32)),
                ("seller_id", models.CharField(db_index=True, max_length=64)),
                ("seller_name", models.CharField(blank=True, default="", max_length=200)),
                ("seller_email", models.CharField(blank=True, default="", max_length=254)),
                ("seller_phone", models.CharField(blank=True, default="", max_length=32)),
                ("item_id", models.CharField(db_index=True, max_length=64)),
                ("item_title", models.CharField(blank=True, default="", max_length=300)),
                ("item_price_cents", models.PositiveIntegerField(default=0)),
                ("item_condition", models.CharField(blank=True, default="", max_length=64)),
                ("item_author", models.CharField(blank=True, default="", max_length=200)),
                ("pickup_type", models.CharField(default="door", max_length=8)),
                ("pickup_address_ref", models.CharField(blank=True, max_length=64, null=True)),
                ("pickup_locker_id", models.CharField(blank=True, max_length=64, null=True)),
                ("pickup_locker_provider", models.CharField(blank=True, max_length=64, null=True)),
                ("delivery_type", models.CharField(default="door", max_length=8)),
                ("delivery_address_ref", models.CharField(blank=True, max_length=64, null=True)),
                ("delivery_locker_id", models.CharField(blank=True, max_length=64, null=True)),
                ("delivery_locker_provider", models.CharField(blank=True, max_length=64, null=True)),
                ("payment_reference", models.CharField(blank=True, max_length=128, null=True, unique=True)),
                ("courier", models.JSONField(blank=True, null=True)),
                ("total_cents", models.PositiveIntegerField(default=0)),
                ("currency", models.CharField(default="ZAR", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("pending_commit", "Pending Commit"),
                            ("committed", "Committed"),
                            ("shipped", "Shipped"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                            ("declined", "Declined"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                ("payment_status", models.CharField(blank=True, max_length=32, null=True)),
                ("delivery_status", models.CharField(blank=True, max_length=64, null=True)),
                ("inventory_snapshot", models.JSONField(blank=True, null=True)),
                ("shipment", models.JSONField(blank=True, null=True)),
                ("tracking_number", models.CharField(blank=True, db_index=True, max_length=128, null=True)),
                ("shipment_cancel_error", models.TextField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refund_status", models.CharField(blank=True, max_length=32, null=True)),
                ("refund_id", models.CharField(blank=True, max_length=64, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("decline_reason", models.TextField(blank=True, null=True)),
                ("declined_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("committed_at", models.DateTimeField(blank=True, null=True)),
                ("shipped_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-internal_id"],
            },
        ),
        migrations.AddConstraint(
            model_name="ordermodel",
            constraint=models.UniqueConstraint(
                condition=models.Q(status__in=["pending", "paid", "pending_commit", "committed"]),
                fields=("buyer_id", "seller_id", "item_id"),
                name="uniq_active_order_per_item",
            ),
        ),
        migrations.CreateModel(
            name="Profile",
            fields=[
                ("user_id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("full_name", models.CharField(blank=True, default="", max_length=200)),
                ("email", models.CharField(blank=True, default="", max_length=254)),
                ("phone", models.CharField(blank=True, default="", max_length=32)),
                ("role", models.CharField(default="user", max_length=16)),
                ("pickup_address_ref", models.CharField(blank=True, max_length=64, null=True)),
                ("shipping_address_ref", models.CharField(blank=True, max_length=64, null=True)),
                ("preferred_locker_id", models.CharField(blank=True, max_length=64, null=True)),
                ("preferred_locker_provider", models.CharField(blank=True, max_length=64, null=True)),
            ],
            options={"db_table": "profiles"},
        ),
        migrations.CreateModel(
            name="SavedAddress",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(db_index=True, max_length=64)),
                ("street_address", models.CharField(max_length=300)),
                ("city", models.CharField(max_length=120)),
                ("province", models.CharField(max_length=120)),
                ("postal_code", models.CharField(max_length=16)),
                ("local_area", models.CharField(blank=True, default="", max_length=120)),
                ("company", models.CharField(blank=True, default="", max_length=200)),
                ("country", models.CharField(default="ZA", max_length=2)),
            ],
            options={"db_table": "saved_addresses"},
        ),
        migrations.CreateModel(
            name="OrderNotification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_id", models.CharField(db_index=True, max_length=64)),
                ("order_id", models.CharField(blank=True, max_length=64, null=True)),
                ("kind", models.CharField(max_length=64)),
                ("title", models.CharField(max_length=200)),
                ("message", models.TextField()),
                ("read", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "order_notifications",
                "ordering": ["-created_at"],
            },
        ),
    ]
