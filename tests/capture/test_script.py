"""Tests for the packaged extraction script."""

from tabwatch.capture.script import SCRIPT_VERSION, load_extractor_script


def test_script_loads_with_version_header():
    source = load_extractor_script()
    assert source.splitlines()[0].endswith(f"version {SCRIPT_VERSION}")
    assert "(table) =>" in source


def test_script_is_cached():
    assert load_extractor_script() is load_extractor_script()
