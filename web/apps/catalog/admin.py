from django.contrib import admin

from .models import Course, CourseAsset


class CourseAssetInline(admin.TabularInline):
    model = CourseAsset
    extra = 0
    fields = ("title", "file", "mime_type", "file_size")


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "creator", "price", "is_published", "created_at")
    list_filter = ("is_published",)
    search_fields = ("title", "creator__email")
    inlines = [CourseAssetInline]
