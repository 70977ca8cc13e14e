from __future__ import annotations
"""Data models shared by the client, namespace builder and orchestrator."""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Union

DEFAULT_REGION = "us-east-1"

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "heic"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "avi", "mkv", "wmv", "flv", "webm"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "aac", "flac", "ogg", "m4a"})


class ProviderType(Enum):
    """Supported S3-compatible providers."""

    S3 = "Amazon S3"
    MINIO = "MinIO"
    QINIU = "Qiniu"
    ALIYUN = "Aliyun OSS"
    TENCENT = "Tencent COS"

    @classmethod
    def from_value(cls, value: str | None) -> "ProviderType":
        try:
            return cls(value)
        except ValueError:
            return cls.S3

    @property
    def icon_name(self) -> str:
        return _PROVIDER_ICONS[self]

    @property
    def default_endpoint(self) -> str:
        return _PROVIDER_ENDPOINTS[self]

    def normalize_endpoint(self, endpoint: str) -> str:
        """Rewrite provider-specific endpoint spellings.

        Qiniu publishes ``s3.<region>.qiniucs.com`` but serves the S3 API on
        ``s3-<region>.qiniucs.com``. Every other provider passes through.
        """
        return _PROVIDER_NORMALIZERS[self](endpoint)


def _normalize_qiniu(endpoint: str) -> str:
    if endpoint.startswith("s3.") and endpoint.endswith(".qiniucs.com"):
        return "s3-" + endpoint[3:]
    return endpoint


def _passthrough(endpoint: str) -> str:
    return endpoint


_PROVIDER_ICONS = {
    ProviderType.S3: "cloud.fill",
    ProviderType.MINIO: "server.rack",
    ProviderType.QINIU: "icloud.fill",
    ProviderType.ALIYUN: "cloud.circle.fill",
    ProviderType.TENCENT: "cloud.bolt.fill",
}

_PROVIDER_ENDPOINTS = {
    ProviderType.S3: "s3.amazonaws.com",
    ProviderType.MINIO: "localhost:9000",
    ProviderType.QINIU: "s3-cn-east-1.qiniucs.com",
    ProviderType.ALIYUN: "oss-cn-hangzhou.aliyuncs.com",
    ProviderType.TENCENT: "cos.ap-guangzhou.myqcloud.com",
}

_PROVIDER_NORMALIZERS = {
    ProviderType.S3: _passthrough,
    ProviderType.MINIO: _passthrough,
    ProviderType.QINIU: _normalize_qiniu,
    ProviderType.ALIYUN: _passthrough,
    ProviderType.TENCENT: _passthrough,
}


def normalize_endpoint(provider: ProviderType, endpoint: str) -> str:
    return provider.normalize_endpoint(endpoint)


@dataclass(frozen=True)
class EndpointConfig:
    """Connection parameters for one bucket on one endpoint."""

    provider: ProviderType
    endpoint: str
    bucket: str
    region: str = ""
    use_ssl: bool = True
    path_style: bool = False
    note: Optional[str] = None
    cdn_url: Optional[str] = None
    credentials_ref: str = ""
    name: str = ""

    @property
    def effective_region(self) -> str:
        return self.region or DEFAULT_REGION

    def normalized(self) -> "EndpointConfig":
        endpoint = self.provider.normalize_endpoint(self.endpoint.strip())
        if endpoint == self.endpoint:
            return self
        return replace(self, endpoint=endpoint)


@dataclass(frozen=True)
class Credentials:
    """Access key pair. Only the signer reads the secret."""

    access_key: str
    secret_key: str = field(repr=False)


@dataclass(frozen=True)
class ObjectRecord:
    """A single object returned by a bucket listing."""

    key: str
    size: int
    last_modified: datetime
    content_type: str = "application/octet-stream"
    url: Optional[str] = None

    @property
    def name(self) -> str:
        return self.key.rsplit("/", 1)[-1]

    @property
    def extension(self) -> str:
        stem, dot, suffix = self.name.rpartition(".")
        return suffix.lower() if dot and stem else ""

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/") or self.extension in IMAGE_EXTENSIONS

    @property
    def is_video(self) -> bool:
        return self.content_type.startswith("video/") or self.extension in VIDEO_EXTENSIONS

    @property
    def is_audio(self) -> bool:
        return self.content_type.startswith("audio/") or self.extension in AUDIO_EXTENSIONS

    @property
    def is_media(self) -> bool:
        return self.is_image or self.is_video or self.is_audio

    @property
    def icon_name(self) -> str:
        if self.is_image:
            return "photo"
        if self.is_video:
            return "video"
        if self.is_audio:
            return "music.note"
        return "doc"


@dataclass(frozen=True)
class FolderNode:
    """A virtual folder aggregated from the keys below it."""

    name: str
    path: str
    file_count: int = 0
    total_size: int = 0

    is_folder = True

    @property
    def node_id(self) -> str:
        return f"folder:{self.path}"


@dataclass(frozen=True)
class FileNode:
    """An object that lives directly in the current folder."""

    record: ObjectRecord

    is_folder = False

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def node_id(self) -> str:
        return f"file:{self.record.key}"


NamespaceNode = Union[FolderNode, FileNode]


class TransferStatus(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class UploadSource:
    """Bytes to upload, either read from ``path`` or supplied as ``data``."""

    filename: str
    path: Optional[Path] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: str | Path) -> "UploadSource":
        source_path = Path(path)
        return cls(filename=source_path.name, path=source_path)

    def read(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise OSError(f"No data available for {self.filename}")
        return self.path.read_bytes()


@dataclass
class TransferTask:
    """One pending upload inside a batch."""

    source: UploadSource
    key: str = ""
    status: TransferStatus = TransferStatus.PENDING
    error: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.source.filename


@dataclass(frozen=True)
class UploadBatchResult:
    """Outcome of :meth:`StorageManager.upload_batch`."""

    tasks: tuple[TransferTask, ...] = ()
    cancelled: bool = False

    @property
    def total(self) -> int:
        return len(self.tasks)

    @property
    def succeeded(self) -> int:
        return sum(1 for task in self.tasks if task.status is TransferStatus.SUCCEEDED)

    @property
    def failures(self) -> list[tuple[str, str]]:
        return [
            (task.filename, task.error or "")
            for task in self.tasks
            if task.status is TransferStatus.FAILED
        ]

    @property
    def summary(self) -> str:
        text = f"Uploaded {self.succeeded} of {self.total} file(s)"
        if self.cancelled:
            text += " (cancelled)"
        return text


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the orchestrator state handed to observers."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    config: Optional[EndpointConfig] = None
    current_path: str = ""
    files: tuple[ObjectRecord, ...] = ()
    nodes: tuple[NamespaceNode, ...] = ()
    is_loading: bool = False
    is_uploading: bool = False
    upload_progress: float = 0.0
    error_message: Optional[str] = None
    status_message: Optional[str] = None
    last_upload: Optional[UploadBatchResult] = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED
