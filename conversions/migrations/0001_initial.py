from django.db import migrations, models


STATUS_CHOICES = [
    ("received", "Received"),
    ("converting", "Converting"),
    ("processing", "Processing"),
    ("completed", "Completed"),
    ("error", "Error"),
]


def _status_fields():
    return [
        ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        ("uuid", models.CharField(max_length=64, unique=True)),
        ("status", models.CharField(choices=STATUS_CHOICES, default="received", max_length=16)),
        ("error", models.TextField(blank=True, default="")),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="GifStatus",
            fields=_status_fields() + [
                ("user_id", models.CharField(blank=True, default="", max_length=128)),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="PgnStatus",
            fields=_status_fields() + [
                ("user_id", models.CharField(blank=True, default="", max_length=128)),
                ("pgn_content", models.TextField(blank=True, default="")),
                ("timestamps", models.JSONField(blank=True, default=list)),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="Video",
            fields=_status_fields() + [
                ("uploader_id", models.CharField(max_length=128)),
                ("video_url", models.CharField(blank=True, default="", max_length=512)),
                ("thumbnail_url", models.CharField(blank=True, default="", max_length=512)),
            ],
            options={"abstract": False},
        ),
    ]
