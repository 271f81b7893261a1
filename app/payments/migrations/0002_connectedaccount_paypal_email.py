# Generated manually - PayPal payout destination

from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="connectedaccount",
            name="stripe_account_id",
            field=models.CharField(
                blank=True,
                help_text="Provider account ID (acct_xxx)",
                max_length=255,
                null=True,
                unique=True,
            ),
        ),
        migrations.AddField(
            model_name="connectedaccount",
            name="paypal_email",
            field=models.EmailField(
                blank=True,
                default="",
                help_text="PayPal account that receives payouts for PayPal orders",
                max_length=254,
            ),
        ),
    ]
