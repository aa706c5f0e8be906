from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ExchangeRate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("from_currency", models.CharField(max_length=10)),
                ("to_currency", models.CharField(max_length=10)),
                ("rate", models.DecimalField(decimal_places=10, max_digits=30)),
                ("fetched_at", models.DateTimeField()),
                ("provider", models.CharField(default="manual", max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["from_currency", "to_currency", "-fetched_at"],
                "indexes": [
                    models.Index(fields=["from_currency", "to_currency", "fetched_at"], name="rate_pair_fetched_idx"),
                ],
            },
        ),
    ]
