from django.urls import path

from .views import AssetDownloadView, CourseAssetsView, MyCoursesView, PublicDownloadView

app_name = "catalog"

urlpatterns = [
    path("courses/<int:course_id>/assets", CourseAssetsView.as_view(), name="course-assets"),
    path("assets/<int:asset_id>/download", AssetDownloadView.as_view(), name="asset-download"),
    path("public/download/<str:token>", PublicDownloadView.as_view(), name="public-download"),
    path("me/courses", MyCoursesView.as_view(), name="my-courses"),
]
