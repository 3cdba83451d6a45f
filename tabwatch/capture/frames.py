"""
Frame target selection.

Frames are deduplicated by routing id and filtered by URL scheme. An
empty URL is allowed: same-origin content frames often have not reported
one yet when capture runs.
"""

from __future__ import annotations

from typing import Iterable

from tabwatch.capture.host import Frame

DEFAULT_MAX_FRAMES = 16

_ALLOWED_EXACT = ("about:blank", "about:srcdoc")
_ALLOWED_PREFIXES = ("http://", "https://", "blob:")


def is_allowed_capture_frame_url(raw_url: str | None) -> bool:
    url = str(raw_url or "").strip().lower()
    if not url:
        return True
    if url in _ALLOWED_EXACT:
        return True
    return url.startswith(_ALLOWED_PREFIXES)


def collect_capture_frame_targets(
    frames: Iterable[Frame], max_frames: int = DEFAULT_MAX_FRAMES
) -> list[Frame]:
    """Allowed frames in enumeration order, at most ``max_frames`` of them."""
    targets: list[Frame] = []
    seen: set[int | str] = set()
    for frame in frames:
        if frame is None:
            continue
        routing_id = frame.routing_id
        if routing_id is not None:
            if routing_id in seen:
                continue
            seen.add(routing_id)
        if not is_allowed_capture_frame_url(frame.url):
            continue
        targets.append(frame)
        if len(targets) >= max_frames:
            break
    return targets
