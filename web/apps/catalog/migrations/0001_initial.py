from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Course",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("price", models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal("0.00"))])),
                ("is_published", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("creator", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="created_courses", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "courses",
                "ordering": ["-id"],
                "indexes": [
                    models.Index(fields=["creator"], name="courses_creator_idx"),
                    models.Index(fields=["is_published"], name="courses_published_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CourseAsset",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(blank=True, default="", max_length=255)),
                ("file", models.FileField(max_length=500, upload_to="course_assets/")),
                ("mime_type", models.CharField(blank=True, default="", max_length=150)),
                ("file_size", models.PositiveBigIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("course", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="assets", to="catalog.course")),
            ],
            options={
                "db_table": "course_assets",
                "ordering": ["course_id", "id"],
            },
        ),
    ]
