import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.db import migrations, models


def _timestamp_fields():
    return [
        (
            "id",
            models.BigAutoField(
                auto_created=True,
                primary_key=True,
                serialize=False,
                verbose_name="ID",
            ),
        ),
        (
            "created",
            model_utils.fields.AutoCreatedField(
                default=django.utils.timezone.now,
                editable=False,
                verbose_name="created",
            ),
        ),
        (
            "modified",
            model_utils.fields.AutoLastModifiedField(
                default=django.utils.timezone.now,
                editable=False,
                verbose_name="modified",
            ),
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("employers", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Subscription",
            fields=[
                *_timestamp_fields(),
                (
                    "plan_tier",
                    models.CharField(
                        choices=[
                            ("Tier1", "Tier 1"),
                            ("Tier2", "Tier 2"),
                            ("Tier3", "Tier 3"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("expired", "Expired"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="active",
                        max_length=20,
                    ),
                ),
                (
                    "auto_renewal",
                    models.BooleanField(
                        default=True,
                        help_text=(
                            "Whether Stripe will bill again at the end of the period."
                        ),
                    ),
                ),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        help_text="Stripe Subscription ID (sub_xxx).",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "current_period_start",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "current_period_end",
                    models.DateTimeField(
                        blank=True,
                        help_text="End of the paid period. Only ever moves forward.",
                        null=True,
                    ),
                ),
                (
                    "year_anchor_date",
                    models.DateTimeField(
                        help_text=(
                            "First purchase + 1 year. Auto-renewal cannot be "
                            "resumed after."
                        ),
                    ),
                ),
                (
                    "cancel_grace_deadline",
                    models.DateTimeField(
                        help_text="Cancelling before this is immediate and unbilled.",
                    ),
                ),
                ("renewal_count", models.PositiveIntegerField(default=0)),
                ("last_payment_amount_cents", models.IntegerField(default=0)),
                ("last_payment_attempt_failed", models.BooleanField(default=False)),
                (
                    "applied_promotion_code",
                    models.CharField(blank=True, max_length=255),
                ),
                (
                    "hosted_invoice_url",
                    models.URLField(blank=True, max_length=1000),
                ),
                (
                    "employer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="employers.employer",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                *_timestamp_fields(),
                (
                    "stripe_charge_ref",
                    models.CharField(
                        help_text="Stripe Invoice ID (in_xxx) for successful charges.",
                        max_length=255,
                        unique=True,
                    ),
                ),
                ("gross_amount_cents", models.IntegerField(default=0)),
                ("discount_amount_cents", models.IntegerField(default=0)),
                ("net_amount_cents", models.IntegerField(default=0)),
                ("currency", models.CharField(blank=True, max_length=3)),
                ("period_start", models.DateTimeField(blank=True, null=True)),
                ("period_end", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("success", "Success"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("is_renewal", models.BooleanField(default=False)),
                ("promotion_code", models.CharField(blank=True, max_length=255)),
                ("receipt_url", models.URLField(blank=True, max_length=1000)),
                (
                    "employer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="employers.employer",
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="billing.subscription",
                    ),
                ),
            ],
            options={
                "ordering": ["-created"],
            },
        ),
        migrations.AddField(
            model_name="subscription",
            name="last_payment",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="billing.payment",
            ),
        ),
        migrations.AddConstraint(
            model_name="subscription",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status", "active")),
                fields=("employer",),
                name="uq_billing_one_active_subscription_per_employer",
            ),
        ),
        migrations.AddIndex(
            model_name="subscription",
            index=models.Index(
                fields=["employer", "status"],
                name="billing_sub_employe_2f1c3a_idx",
            ),
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                *_timestamp_fields(),
                (
                    "stripe_event_id",
                    models.CharField(max_length=255, unique=True),
                ),
                (
                    "event_type",
                    models.CharField(db_index=True, max_length=100),
                ),
                ("payload", models.JSONField(default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("received", "Received"),
                            ("processed", "Processed"),
                            ("ignored", "Ignored"),
                            ("failed", "Failed"),
                        ],
                        default="received",
                        max_length=20,
                    ),
                ),
                ("outcome", models.CharField(blank=True, max_length=20)),
                ("error_message", models.TextField(blank=True)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-created"],
                "indexes": [
                    models.Index(
                        fields=["status", "created"],
                        name="billing_web_status_8d0e4b_idx",
                    ),
                ],
            },
        ),
    ]
