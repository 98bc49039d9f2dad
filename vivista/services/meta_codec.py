"""
Video metadata document codec.

Current format is versioned JSON:
    {"version": 1, "guid": "...", "title": "...", "description": "...", "length": 93.4}

Older uploaders send a line-oriented document with one `key: value` pair per
line in a fixed order (version, guid, title, description, length). Best-effort
decoding accepts both and falls back to empty fields instead of failing the upload.
"""
import json
import logging

from pydantic import BaseModel, ValidationError, field_validator

from vivista.services.errors import MetaDecodeError

logger = logging.getLogger(__name__)

META_VERSION = 1
LEGACY_FIELDS = ("version", "guid", "title", "description", "length")


class VideoMeta(BaseModel):
    version: int = META_VERSION
    guid: str = ""
    title: str = ""
    description: str = ""
    length: int = 0  # seconds, truncated

    @field_validator("length", mode="before")
    @classmethod
    def _truncate_length(cls, v):
        if v is None or v == "":
            return 0
        return int(float(v))


def encode_meta(meta: VideoMeta) -> bytes:
    return meta.model_dump_json().encode("utf-8")


def _decode_json(text: str) -> VideoMeta:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("metadata document is not an object")
    return VideoMeta.model_validate(data)


def _legacy_version(value: str) -> int:
    # Header only; an unreadable version must not discard the fields after it
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return 0


def _decode_legacy(text: str) -> VideoMeta:
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < len(LEGACY_FIELDS):
        raise ValueError("legacy metadata document is truncated")
    values = {}
    for name, line in zip(LEGACY_FIELDS, lines):
        key, sep, value = line.partition(":")
        if not sep:
            raise ValueError(f"line for {name!r} has no ':'")
        values[name] = value.strip()
    return VideoMeta(
        version=_legacy_version(values["version"]),
        guid=values["guid"],
        title=values["title"],
        description=values["description"],
        length=float(values["length"]),
    )


def decode_meta(raw: bytes | str, strict: bool = False) -> VideoMeta:
    """
    Decode a metadata document. With strict=False (ingestion), anything
    unreadable yields VideoMeta() with empty title/description and length 0.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    text = text.lstrip("\ufeff")
    decoder = _decode_json if text.lstrip().startswith("{") else _decode_legacy
    try:
        return decoder(text)
    except (ValueError, TypeError, OverflowError, ValidationError) as e:
        if strict:
            raise MetaDecodeError(str(e)) from e
        logger.info("Unreadable metadata document, using empty fields: %s", e)
        return VideoMeta()
