"""Storage key naming and external reference shapes.

Keys live in two namespaces:

    avatars/<generated>.<ext>
    attachments/<segment>/.../<uuid>-<original name>

References handed to callers are derived from the key and the active mode:
``/uploads/file/<key>`` when S3 backs the gateway, ``/uploads/<key>`` on local
disk. Older deployments also stored absolute S3 URLs; those are accepted when
deleting.
"""
import re
from urllib.parse import unquote, urlparse

AVATARS = "avatars"
ATTACHMENTS = "attachments"
NAMESPACES = (AVATARS, ATTACHMENTS)

PROXY_PREFIX = "/uploads/file/"
LOCAL_PREFIX = "/uploads/"

_UNSAFE_SEGMENT = re.compile(r"[^a-z0-9_-]")


def sanitize_segment(segment: str) -> str:
    """Lower-case and replace anything outside [a-z0-9_-] with '_'."""
    return _UNSAFE_SEGMENT.sub("_", segment.lower())


def sanitize_segments(segments) -> list[str]:
    """Sanitize each folder name; empty ones are dropped so keys never hold '//'."""
    return [s for s in (sanitize_segment(seg) for seg in segments or []) if s]


def original_basename(filename: str | None) -> str:
    """Original filename without any path components."""
    if not filename or not filename.strip():
        return ""
    return filename.strip().replace("\\", "/").split("/")[-1]


def avatar_key(filename: str) -> str:
    return f"{AVATARS}/{filename}"


def attachment_key(segments: list[str], filename: str) -> str:
    return "/".join([ATTACHMENTS, *segments, filename])


def attachment_prefix(segments: list[str]) -> str:
    return "/".join([ATTACHMENTS, *segments]) + "/"


def in_known_namespace(key: str) -> bool:
    return any(key.startswith(f"{ns}/") and len(key) > len(ns) + 1 for ns in NAMESPACES)


def external_reference(key: str, remote: bool) -> str:
    return f"{PROXY_PREFIX}{key}" if remote else f"{LOCAL_PREFIX}{key}"


def is_absolute_url(reference: str) -> bool:
    return reference.startswith(("http://", "https://"))


def proxy_key(reference: str) -> str | None:
    """Key from a /uploads/file/<key> reference, else None."""
    if reference.startswith(PROXY_PREFIX):
        return reference[len(PROXY_PREFIX):]
    return None


def legacy_url_key(reference: str) -> str | None:
    """Key from an absolute object URL (path without the leading '/'), else None."""
    if not is_absolute_url(reference):
        return None
    return unquote(urlparse(reference).path).lstrip("/") or None


def local_key(reference: str) -> str:
    """Path relative to the uploads root for a local-style reference."""
    if reference.startswith(LOCAL_PREFIX):
        return reference[len(LOCAL_PREFIX):]
    return reference.lstrip("/")
