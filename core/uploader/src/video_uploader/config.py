"""Configuration objects for the video upload pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

from .exceptions import ConfigurationError
from .models import ServerDescriptor

DEFAULT_VIDEO_MIME_TYPES: Tuple[str, ...] = (
    "video/mp4",
    "video/quicktime",
    "video/webm",
    "video/x-msvideo",
    "video/x-matroska",
    "video/x-m4v",
    "video/3gpp",
    "video/3gpp2",
    "video/mpeg",
    "video/ogg",
    "video/x-flv",
    "video/hevc",
)

DEFAULT_VIDEO_EXTENSIONS: Tuple[str, ...] = (
    ".mp4",
    ".mov",
    ".webm",
    ".avi",
    ".mkv",
    ".m4v",
    ".3gp",
    ".3g2",
    ".mpeg",
    ".mpg",
    ".ogv",
    ".flv",
    ".hevc",
)


@dataclass(frozen=True, slots=True)
class ValidationLimits:
    """Bounds applied before any network call is made."""

    min_duration: float = 1.0
    max_duration: float = 600.0
    max_size_bytes: int = 500 * 1024 * 1024
    video_mime_types: Tuple[str, ...] = DEFAULT_VIDEO_MIME_TYPES
    video_extensions: Tuple[str, ...] = DEFAULT_VIDEO_EXTENSIONS
    direct_mime_types: Tuple[str, ...] = ("video/mp4",)
    direct_extensions: Tuple[str, ...] = (".mp4",)
    ffprobe_binary: str = "ffprobe"

    def __post_init__(self) -> None:
        if self.min_duration < 0 or self.max_duration <= 0:
            raise ConfigurationError("duration bounds must be positive")
        if self.min_duration > self.max_duration:
            raise ConfigurationError(
                f"min_duration ({self.min_duration}) exceeds max_duration ({self.max_duration})"
            )
        if self.max_size_bytes <= 0:
            raise ConfigurationError("max_size_bytes must be positive")


@dataclass(frozen=True, slots=True)
class ContentStoreSettings:
    """Endpoint of the content-addressed store used for direct uploads."""

    endpoint: str
    gateway_url: str = "https://ipfs.io/ipfs/"
    key: str = "ipfs"
    display_name: str = "IPFS"
    timeout: float = 300.0
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.endpoint or not self.endpoint.strip():
            raise ConfigurationError("content store endpoint must be provided")
        if self.timeout <= 0:
            raise ConfigurationError("content store timeout must be positive")


@dataclass(frozen=True, slots=True)
class ProgressSettings:
    """How the transfer and processing phases share the 0-100 scale."""

    transfer_weight: float = 20.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.transfer_weight <= 100.0:
            raise ConfigurationError("transfer_weight must be within [0, 100]")


class ServerRegistry:
    """Immutable, priority ordered collection of transcoding servers."""

    __slots__ = ("_servers", "_by_key")

    def __init__(self, servers: Iterable[ServerDescriptor]) -> None:
        indexed = list(enumerate(servers))
        if not indexed:
            raise ConfigurationError("server registry must contain at least one server")
        by_key: Dict[str, ServerDescriptor] = {}
        for _, server in indexed:
            if server.key in by_key:
                raise ConfigurationError(f"duplicate server key: {server.key}")
            if server.timeout <= 0:
                raise ConfigurationError(f"server {server.key} must have a positive timeout")
            by_key[server.key] = server
        # stable on ties: declaration order decides
        indexed.sort(key=lambda item: (item[1].priority, item[0]))
        self._servers: Tuple[ServerDescriptor, ...] = tuple(server for _, server in indexed)
        self._by_key = by_key

    def __iter__(self) -> Iterator[ServerDescriptor]:
        return iter(self._servers)

    def __len__(self) -> int:
        return len(self._servers)

    def __getitem__(self, index: int) -> ServerDescriptor:
        return self._servers[index]

    def __repr__(self) -> str:
        return f"ServerRegistry({', '.join(self.keys())})"

    def get(self, key: str) -> Optional[ServerDescriptor]:
        return self._by_key.get(key)

    def keys(self) -> Tuple[str, ...]:
        return tuple(server.key for server in self._servers)


@dataclass(frozen=True, slots=True)
class UploaderConfig:
    """Everything a pipeline needs, injected instead of read from globals."""

    registry: ServerRegistry
    content_store: ContentStoreSettings
    limits: ValidationLimits = field(default_factory=ValidationLimits)
    progress: ProgressSettings = field(default_factory=ProgressSettings)
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    poll_interval: float = 0.25

    def __post_init__(self) -> None:
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ConfigurationError("connect_timeout and read_timeout must be positive")


__all__ = [
    "ContentStoreSettings",
    "DEFAULT_VIDEO_EXTENSIONS",
    "DEFAULT_VIDEO_MIME_TYPES",
    "ProgressSettings",
    "ServerRegistry",
    "UploaderConfig",
    "ValidationLimits",
]
