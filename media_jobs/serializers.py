from django.conf import settings
from rest_framework import serializers

from .models import (
    AUDIO_FORMATS,
    AudioOptions,
    DownloadOptions,
    JobKind,
    JobRequest,
    StreamingOptions,
    ThumbnailOptions,
    TranscodeOptions,
)


class JobRecordSerializer(serializers.Serializer):
    id = serializers.CharField()
    kind = serializers.CharField()
    status = serializers.CharField()
    progress = serializers.IntegerField()
    created_at = serializers.FloatField()
    updated_at = serializers.FloatField()
    metadata = serializers.DictField()
    result = serializers.DictField(allow_null=True)
    error = serializers.CharField(allow_null=True)


class JobRequestSerializer(serializers.Serializer):
    """Common fields; subclasses add the per-kind options and build them."""
    kind = None

    url = serializers.URLField()
    sync = serializers.BooleanField(default=False)

    def build_options(self, data):
        raise NotImplementedError

    def to_request(self) -> JobRequest:
        data = self.validated_data
        return JobRequest(kind=self.kind, url=data["url"], options=self.build_options(data))


class DownloadJobSerializer(JobRequestSerializer):
    kind = JobKind.DOWNLOAD

    format = serializers.CharField(default="best")
    type = serializers.ChoiceField(choices=["video", "audio"], default="video")
    transcode = serializers.BooleanField(default=False)
    video_bitrate = serializers.CharField(default="2000k")
    audio_bitrate = serializers.CharField(default="128k")
    resolution = serializers.CharField(required=False, allow_null=True, default=None)
    output_format = serializers.CharField(default="mp4")

    def build_options(self, data):
        transcode = None
        if data["transcode"]:
            transcode = TranscodeOptions(
                video_bitrate=data["video_bitrate"],
                audio_bitrate=data["audio_bitrate"],
                resolution=data.get("resolution"),
                format=data["output_format"],
            )
        return DownloadOptions(format=data["format"], media_type=data["type"], transcode=transcode)


class AudioJobSerializer(JobRequestSerializer):
    kind = JobKind.AUDIO

    format = serializers.ChoiceField(choices=AUDIO_FORMATS, default="mp3")
    bitrate = serializers.CharField(default="192k")
    sample_rate = serializers.CharField(default="44100")

    def build_options(self, data):
        return AudioOptions(format=data["format"], bitrate=data["bitrate"], sample_rate=data["sample_rate"])


class StreamingJobSerializer(JobRequestSerializer):
    kind = JobKind.STREAMING

    segment_duration = serializers.IntegerField(min_value=1, max_value=60, required=False)

    def build_options(self, data):
        return StreamingOptions(
            segment_duration=data.get("segment_duration") or settings.MEDIA_JOBS_SEGMENT_DURATION
        )


class ThumbnailJobSerializer(JobRequestSerializer):
    kind = JobKind.THUMBNAILS

    count = serializers.IntegerField(min_value=1, max_value=50, default=5)

    def build_options(self, data):
        return ThumbnailOptions(count=data["count"])


REQUEST_SERIALIZERS = {
    JobKind.DOWNLOAD: DownloadJobSerializer,
    JobKind.AUDIO: AudioJobSerializer,
    JobKind.STREAMING: StreamingJobSerializer,
    JobKind.THUMBNAILS: ThumbnailJobSerializer,
}


class MediaInfoRequestSerializer(serializers.Serializer):
    url = serializers.URLField()


class CleanupRequestSerializer(serializers.Serializer):
    max_age = serializers.IntegerField(min_value=0, required=False)
