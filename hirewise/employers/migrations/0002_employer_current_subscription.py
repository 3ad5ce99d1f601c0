import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("employers", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="employer",
            name="current_subscription",
            field=models.ForeignKey(
                blank=True,
                help_text="Most recently activated subscription for this employer.",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="billing.subscription",
            ),
        ),
    ]
