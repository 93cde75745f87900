from django.http import FileResponse
from django.urls import reverse
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .models import JobStatus, result_from_dict
from .serializers import (
    CleanupRequestSerializer,
    JobRecordSerializer,
    MediaInfoRequestSerializer,
    REQUEST_SERIALIZERS,
)
from .services import get_job_service


def _file_urls(request, job_id: str, result: dict | None) -> list[dict]:
    if not result or "kind" not in result:
        return []
    return [
        {
            "filename": name,
            "url": request.build_absolute_uri(reverse("job_file", args=[job_id, name])),
        }
        for name in result_from_dict(result).artifacts()
    ]


class OneShotFileResponse(FileResponse):
    """Streams an artifact and releases the job once the server closes the response."""

    def __init__(self, artifact, **kwargs):
        self._artifact = artifact
        super().__init__(open(artifact.path, "rb"), as_attachment=True, filename=artifact.filename, **kwargs)

    def close(self):
        super().close()
        self._artifact.release()


class SubmitJobView(views.APIView):
    """
    Submits a job of the kind bound in urls.py. Async (default) answers 202
    with the job id; sync runs the pipeline in this request and returns the
    result directly.
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    kind = None

    def post(self, request):
        ser = REQUEST_SERIALIZERS[self.kind](data=request.data)
        ser.is_valid(raise_exception=True)
        job_request = ser.to_request()
        sync = ser.validated_data["sync"]

        job_id, result = get_job_service().submit(job_request, sync=sync)
        if not sync:
            return Response(
                {
                    "job_id": job_id,
                    "status": str(JobStatus.PENDING),
                    "status_url": request.build_absolute_uri(reverse("job_detail", args=[job_id])),
                },
                status=status.HTTP_202_ACCEPTED,
            )

        payload = result.to_dict()
        return Response({
            "job_id": job_id,
            "status": str(JobStatus.COMPLETED),
            "result": payload,
            "files": _file_urls(request, job_id, payload),
        })


class JobListView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        records = get_job_service().list_jobs()
        data = JobRecordSerializer([r.to_dict() for r in records], many=True).data
        return Response({"count": len(data), "jobs": data})


class JobDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        record = get_job_service().status(job_id)
        data = JobRecordSerializer(record.to_dict()).data
        if record.status == JobStatus.COMPLETED:
            data["files"] = _file_urls(request, job_id, record.result)
        return Response(data)


class JobCancelView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, job_id):
        record = get_job_service().cancel(job_id)
        return Response({"job_id": record.id, "status": str(record.status)})


class JobFileView(views.APIView):
    """One-shot download: the workspace and the record are deleted after delivery."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id, filename):
        artifact = get_job_service().retrieve(job_id, filename)
        return OneShotFileResponse(artifact)


class MediaInfoView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = MediaInfoRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(get_job_service().media_info(ser.validated_data["url"]))


class CleanupView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = CleanupRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(get_job_service().cleanup(ser.validated_data.get("max_age")))
