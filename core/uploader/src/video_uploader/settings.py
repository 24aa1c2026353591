"""Environment driven defaults for the video uploader."""
from __future__ import annotations

import json
import logging
import os
from typing import Any, List, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from .config import (
    DEFAULT_VIDEO_EXTENSIONS,
    DEFAULT_VIDEO_MIME_TYPES,
    ContentStoreSettings,
    ProgressSettings,
    ServerRegistry,
    UploaderConfig,
    ValidationLimits,
)
from .exceptions import ConfigurationError
from .models import ServerDescriptor
from .utils import coerce_float, coerce_int, to_optional_str, to_string_sequence

LOGGER = logging.getLogger(__name__)

_dotenv_path = find_dotenv(usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path, override=False)

# key, display name, url env, default url, priority, default timeout (seconds)
_DEFAULT_SERVERS = (
    ("oracle", "Oracle", "VIDEO_UPLOADER_ORACLE_URL", "http://localhost:8081", 1, 120.0),
    ("macmini", "Mac Mini", "VIDEO_UPLOADER_MACMINI_URL", "http://localhost:8082", 2, 180.0),
    ("pi", "Raspberry Pi", "VIDEO_UPLOADER_PI_URL", "http://localhost:8083", 3, 300.0),
)


def _env(name: str, default: str) -> str:
    return to_optional_str(os.getenv(name)) or default


def _server_from_mapping(entry: Mapping[str, Any], index: int) -> ServerDescriptor:
    key = to_optional_str(entry.get("key"))
    endpoint = to_optional_str(entry.get("endpoint") or entry.get("url"))
    if not key or not endpoint:
        raise ConfigurationError(f"server entry #{index} needs both 'key' and 'endpoint'")
    return ServerDescriptor(
        key=key,
        display_name=to_optional_str(entry.get("display_name") or entry.get("name")) or key,
        endpoint=endpoint,
        priority=coerce_int(entry.get("priority"), index + 1),
        timeout=coerce_float(entry.get("timeout"), 120.0),
    )


def load_servers(raw: Optional[str] = None) -> List[ServerDescriptor]:
    """Parse ``VIDEO_UPLOADER_SERVERS`` (JSON list) or fall back to the defaults."""

    payload = raw if raw is not None else os.getenv("VIDEO_UPLOADER_SERVERS")
    if payload and payload.strip():
        try:
            entries = json.loads(payload)
        except ValueError as exc:
            raise ConfigurationError(f"VIDEO_UPLOADER_SERVERS is not valid JSON: {exc}") from exc
        if not isinstance(entries, list):
            raise ConfigurationError("VIDEO_UPLOADER_SERVERS must be a JSON list")
        servers = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                raise ConfigurationError(f"server entry #{index} must be an object")
            servers.append(_server_from_mapping(entry, index))
        return servers

    servers = []
    for key, name, url_env, default_url, priority, timeout in _DEFAULT_SERVERS:
        env_prefix = f"VIDEO_UPLOADER_{key.upper()}"
        servers.append(
            ServerDescriptor(
                key=key,
                display_name=name,
                endpoint=_env(url_env, default_url),
                priority=coerce_int(os.getenv(f"{env_prefix}_PRIORITY"), priority),
                timeout=coerce_float(os.getenv(f"{env_prefix}_TIMEOUT"), timeout),
            )
        )
    return servers


def build_default_config() -> UploaderConfig:
    """Return the pipeline configuration assembled from the environment."""

    limits = ValidationLimits(
        min_duration=coerce_float(os.getenv("VIDEO_UPLOADER_MIN_DURATION"), 1.0),
        max_duration=coerce_float(os.getenv("VIDEO_UPLOADER_MAX_DURATION"), 600.0),
        max_size_bytes=coerce_int(
            os.getenv("VIDEO_UPLOADER_MAX_SIZE_BYTES"),
            500 * 1024 * 1024,
        ),
        video_mime_types=to_string_sequence(os.getenv("VIDEO_UPLOADER_VIDEO_MIME_TYPES"))
        or DEFAULT_VIDEO_MIME_TYPES,
        video_extensions=to_string_sequence(os.getenv("VIDEO_UPLOADER_VIDEO_EXTENSIONS"))
        or DEFAULT_VIDEO_EXTENSIONS,
        direct_mime_types=to_string_sequence(os.getenv("VIDEO_UPLOADER_DIRECT_MIME_TYPES"))
        or ("video/mp4",),
        ffprobe_binary=_env("VIDEO_UPLOADER_FFPROBE", "ffprobe"),
    )

    store_headers = {}
    store_token = to_optional_str(os.getenv("VIDEO_UPLOADER_STORE_TOKEN"))
    if store_token:
        store_headers["Authorization"] = f"Bearer {store_token}"

    content_store = ContentStoreSettings(
        endpoint=_env("VIDEO_UPLOADER_STORE_URL", "http://localhost:3000/api/pinata"),
        gateway_url=_env("VIDEO_UPLOADER_GATEWAY_URL", "https://ipfs.io/ipfs/"),
        key=_env("VIDEO_UPLOADER_STORE_KEY", "ipfs"),
        display_name=_env("VIDEO_UPLOADER_STORE_NAME", "IPFS"),
        timeout=coerce_float(os.getenv("VIDEO_UPLOADER_STORE_TIMEOUT"), 300.0),
        headers=store_headers,
    )

    servers = load_servers()
    LOGGER.debug("Loaded %d transcoding server(s): %s", len(servers), [s.key for s in servers])

    return UploaderConfig(
        registry=ServerRegistry(servers),
        content_store=content_store,
        limits=limits,
        progress=ProgressSettings(
            transfer_weight=coerce_float(os.getenv("VIDEO_UPLOADER_TRANSFER_WEIGHT"), 20.0),
        ),
        connect_timeout=coerce_float(os.getenv("VIDEO_UPLOADER_CONNECT_TIMEOUT"), 10.0),
        read_timeout=coerce_float(os.getenv("VIDEO_UPLOADER_READ_TIMEOUT"), 30.0),
    )


__all__ = ["build_default_config", "load_servers"]
