"""Tests for capture frame selection."""

import pytest

from tabwatch.capture.frames import collect_capture_frame_targets, is_allowed_capture_frame_url
from tabwatch.capture.host import Frame


class StubFrame(Frame):
    def __init__(self, routing_id, url):
        self._routing_id = routing_id
        self._url = url

    @property
    def routing_id(self):
        return self._routing_id

    @property
    def url(self):
        return self._url

    async def execute_script(self, source, arg=None):
        return {}


@pytest.mark.parametrize(
    "url",
    [
        "https://app.slack.com/client",
        "HTTP://example.com",
        "about:blank",
        "about:srcdoc",
        "blob:https://teams.microsoft.com/0f1c",
        "",
        None,
        "   ",
    ],
)
def test_allowed_urls(url):
    assert is_allowed_capture_frame_url(url) is True


@pytest.mark.parametrize(
    "url",
    ["file:///etc/passwd", "chrome://settings", "about:config", "data:text/html,hi", "javascript:0"],
)
def test_refused_urls(url):
    assert is_allowed_capture_frame_url(url) is False


def test_dedup_by_routing_id_keeps_first():
    first = StubFrame(1, "https://a.example")
    frames = [first, StubFrame(1, "https://b.example"), StubFrame(2, "about:blank")]
    targets = collect_capture_frame_targets(frames)
    assert targets == [first, frames[2]]


def test_frames_without_routing_id_are_all_kept():
    frames = [StubFrame(None, "https://a.example"), StubFrame(None, "https://a.example")]
    assert len(collect_capture_frame_targets(frames)) == 2


def test_filtered_and_capped_in_order():
    frames = [StubFrame(0, "file:///x")] + [StubFrame(i, f"https://f{i}.example") for i in range(1, 30)]
    targets = collect_capture_frame_targets(frames, max_frames=16)
    assert len(targets) == 16
    assert [f.routing_id for f in targets] == list(range(1, 17))


def test_none_entries_are_skipped():
    frame = StubFrame(1, "")
    assert collect_capture_frame_targets([None, frame]) == [frame]
