"""JSON and header rendering for the video endpoints."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from vidpipe.domain.entities.video import VideoMetadata


def render_info(
    meta: VideoMetadata, generic_formats: dict[str, str]
) -> dict[str, Any]:
    """Metadata payload for ``GET /info``.

    Args:
        meta: Resolved metadata of the page.
        generic_formats: Format presets offered for this deployment.

    Returns:
        JSON-serializable dict.
    """
    payload: dict[str, Any] = {
        "title": meta.title,
        "extractor": meta.extractor_key,
        "webpage_url": meta.webpage_url,
        "protocol": meta.protocol,
        "ext": meta.ext,
        "format_id": meta.format_id,
        "duration": meta.duration,
        "is_playlist": meta.is_playlist,
        "generic_formats": [
            {"format": selector, "label": label}
            for selector, label in generic_formats.items()
        ],
    }
    if meta.is_playlist:
        payload["entries"] = [
            {"url": entry.page_url, "id": entry.id, "title": entry.title}
            for entry in meta.entries
        ]
    return payload


def content_disposition(filename: str) -> str:
    """``attachment`` header with an ASCII fallback plus RFC 5987 name."""
    fallback = "".join(
        c if c.isascii() and c.isprintable() and c not in '"\\' else "_"
        for c in filename
    )
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return (
        f'attachment; filename="{fallback}"; '
        f"filename*=UTF-8''{quote(filename, safe='')}"
    )
