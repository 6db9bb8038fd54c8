from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Course(models.Model):
    """A purchasable course published by a creator."""

    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="created_courses",
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    is_published = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "courses"
        ordering = ["-id"]
        indexes = [
            models.Index(fields=("creator",), name="courses_creator_idx"),
            models.Index(fields=("is_published",), name="courses_published_idx"),
        ]

    def __str__(self) -> str:
        return self.title


class CourseAsset(models.Model):
    """A downloadable material attached to a course."""

    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="assets")
    title = models.CharField(max_length=255, blank=True, default="")
    file = models.FileField(upload_to="course_assets/", max_length=500)
    mime_type = models.CharField(max_length=150, blank=True, default="")
    file_size = models.PositiveBigIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "course_assets"
        ordering = ["course_id", "id"]

    def __str__(self) -> str:
        return self.title or f"asset #{self.pk}"
