"""Course access rules shared by the download endpoints and the cart.

A user may read a course's materials when they created the course or hold an
enrollment whose status is exactly ``active``.
"""

import re

from apps.orders.models import Enrollment

from .models import Course, CourseAsset

_UNSAFE_NAME_RE = re.compile(r"[^\w.\-()+ ]")


def has_active_enrollment(user_id: int, course_id: int) -> bool:
    return Enrollment.objects.filter(
        user_id=user_id,
        course_id=course_id,
        status=Enrollment.Status.ACTIVE,
    ).exists()


def is_course_creator(user_id: int, course: Course) -> bool:
    return course.creator_id == user_id


def can_access_course(user_id: int, course: Course) -> bool:
    return is_course_creator(user_id, course) or has_active_enrollment(user_id, course.pk)


def safe_download_name(name: str | None) -> str:
    """Replace characters that are unsafe in a download file name."""
    base = (name or "").strip() or "file"
    return _UNSAFE_NAME_RE.sub("_", base)


def asset_file_exists(asset: CourseAsset) -> bool:
    if not asset.file or not asset.file.name:
        return False
    return asset.file.storage.exists(asset.file.name)
