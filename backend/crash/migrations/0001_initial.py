from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="GameRound",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("round_id", models.CharField(max_length=32, unique=True)),
                ("room", models.CharField(default="main", max_length=64)),
                ("crash_point", models.DecimalField(decimal_places=2, max_digits=8)),
                ("occurred_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["-id"],
                "indexes": [models.Index(fields=["room", "occurred_at"], name="crash_round_room_time_idx")],
            },
        ),
    ]
