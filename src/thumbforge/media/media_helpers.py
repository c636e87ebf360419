"""Helpers for base64 payloads, data URIs and image mime types."""

from __future__ import annotations

import base64
import binascii
import re

DEFAULT_MIME = "image/png"

DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[\w.+-]+=[^;,]*)*)(?P<b64>;base64)?,(?P<data>.*)$",
    re.DOTALL,
)

_MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def normalize_mime(value: str | None) -> str | None:
    """Strip parameters and map aliases (``image/jpg`` -> ``image/jpeg``)."""
    if not value:
        return None
    mime = value.split(";", 1)[0].strip().lower()
    if not mime:
        return None
    return _MIME_ALIASES.get(mime, mime)


def sniff_mime(payload: bytes) -> str | None:
    """Detect common image formats from their magic bytes."""
    if payload.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if payload.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if payload[:4] == b"RIFF" and payload[8:12] == b"WEBP":
        return "image/webp"
    if payload[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return None


def is_data_uri(value: str) -> bool:
    return value[:5].lower() == "data:"


def decode_base64(value: str) -> bytes:
    """Decode base64 text, tolerating whitespace and missing padding."""
    compact = "".join(value.split())
    compact += "=" * (-len(compact) % 4)
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("payload is not valid base64") from exc


def parse_data_uri(value: str) -> tuple[bytes, str | None]:
    """Return ``(payload, mime)`` for a base64 ``data:`` URI."""
    match = DATA_URI_PATTERN.match(value.strip())
    if match is None:
        raise ValueError("value is not a data URI")
    if not match.group("b64"):
        raise ValueError("only base64 data URIs are supported")
    return decode_base64(match.group("data")), normalize_mime(match.group("mime"))


def encode_data_uri(payload: bytes, mime_type: str | None) -> str:
    mime = normalize_mime(mime_type) or sniff_mime(payload) or DEFAULT_MIME
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"


def resolve_image_mime(payload: bytes, declared: str | None) -> str:
    """Pick the mime type for ``payload``.

    A declared ``image/*`` type wins; anything else falls back to sniffing
    and finally to PNG.
    """
    mime = normalize_mime(declared)
    if mime and mime.startswith("image/"):
        return mime
    return sniff_mime(payload) or DEFAULT_MIME


def extension_for_mime(mime_type: str | None) -> str:
    return _EXTENSIONS.get(normalize_mime(mime_type) or "", "png")


__all__ = [
    "DEFAULT_MIME",
    "normalize_mime",
    "sniff_mime",
    "is_data_uri",
    "decode_base64",
    "parse_data_uri",
    "encode_data_uri",
    "resolve_image_mime",
    "extension_for_mime",
]
