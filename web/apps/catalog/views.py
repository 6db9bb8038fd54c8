"""HTTP views for course materials and the buyer's library.

Downloads are streamed with ``FileResponse``. Session-authenticated
downloads and the public signed-link endpoint share the same access rule:
the requester must be the course creator or hold an ``active`` enrollment.
"""

import logging

from django.http import FileResponse
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.orders.models import Enrollment
from gateway.errors import ForbiddenError, NotFoundError

from .access import asset_file_exists, can_access_course, safe_download_name
from .download_tokens import read_download_token
from .models import Course, CourseAsset

logger = logging.getLogger(__name__)


def _stream_asset(asset: CourseAsset) -> FileResponse:
    if not asset_file_exists(asset):
        raise NotFoundError("File missing on server", code="FILE_MISSING")
    filename = safe_download_name(asset.title or asset.file.name.rsplit("/", 1)[-1])
    response = FileResponse(
        asset.file.open("rb"),
        as_attachment=True,
        filename=filename,
        content_type=asset.mime_type or "application/octet-stream",
    )
    return response


def _get_asset(asset_id: int) -> CourseAsset:
    try:
        return CourseAsset.objects.select_related("course").get(pk=asset_id)
    except CourseAsset.DoesNotExist:
        raise NotFoundError("Asset not found", code="ASSET_NOT_FOUND")


class CourseAssetsView(APIView):
    """List a course's materials for its creator or an active enrollee."""

    def get(self, request, course_id: int):
        try:
            course = Course.objects.get(pk=course_id)
        except Course.DoesNotExist:
            raise NotFoundError("Course not found", code="COURSE_NOT_FOUND")
        if not can_access_course(request.user.pk, course):
            raise ForbiddenError("No access to this course")

        assets = course.assets.order_by("-id")
        return Response([
            {
                "id": a.pk,
                "course_id": a.course_id,
                "title": a.title,
                "mime_type": a.mime_type,
                "file_size": a.file_size,
                "created_at": a.created_at.isoformat(),
            }
            for a in assets
        ])


class AssetDownloadView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "downloads"

    def get(self, request, asset_id: int):
        asset = _get_asset(asset_id)
        if not can_access_course(request.user.pk, asset.course):
            raise ForbiddenError("No access to this file")
        return _stream_asset(asset)


class PublicDownloadView(APIView):
    """Resolve a signed download link sent by e-mail.

    No session is required; the token identifies the buyer. Ownership is
    re-checked at download time so a revoked enrollment invalidates links
    that have not yet expired.
    """

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "downloads"

    def get(self, request, token: str):
        asset_id, buyer_id = read_download_token(token)
        asset = _get_asset(asset_id)
        if not can_access_course(buyer_id, asset.course):
            logger.info(
                "public_download_denied",
                extra={"asset_id": asset_id, "buyer_id": buyer_id},
            )
            raise ForbiddenError("No access to this file")
        return _stream_asset(asset)


class MyCoursesView(APIView):
    """Courses the caller can access through an active enrollment."""

    def get(self, request):
        enrollments = (
            Enrollment.objects
            .filter(user=request.user, status=Enrollment.Status.ACTIVE)
            .select_related("course")
            .order_by("-granted_at")
        )
        return Response([
            {
                "course_id": e.course_id,
                "title": e.course.title,
                "description": e.course.description,
                "price": str(e.course.price),
                "granted_at": e.granted_at.isoformat(),
                "order_id": e.order_id,
            }
            for e in enrollments
        ])
