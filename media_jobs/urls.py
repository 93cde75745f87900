from django.urls import path

from .models import JobKind
from .views import (
    CleanupView,
    JobCancelView,
    JobDetailView,
    JobFileView,
    JobListView,
    MediaInfoView,
    SubmitJobView,
)

urlpatterns = [
    path("jobs/", JobListView.as_view(), name="job_list"),
    path("jobs/download/", SubmitJobView.as_view(kind=JobKind.DOWNLOAD), name="submit_download"),
    path("jobs/audio/", SubmitJobView.as_view(kind=JobKind.AUDIO), name="submit_audio"),
    path("jobs/streaming/", SubmitJobView.as_view(kind=JobKind.STREAMING), name="submit_streaming"),
    path("jobs/thumbnails/", SubmitJobView.as_view(kind=JobKind.THUMBNAILS), name="submit_thumbnails"),
    path("jobs/<str:job_id>/", JobDetailView.as_view(), name="job_detail"),
    path("jobs/<str:job_id>/cancel/", JobCancelView.as_view(), name="job_cancel"),
    path("jobs/<str:job_id>/files/<str:filename>", JobFileView.as_view(), name="job_file"),
    path("media/info/", MediaInfoView.as_view(), name="media_info"),
    path("maintenance/cleanup/", CleanupView.as_view(), name="maintenance_cleanup"),
]
