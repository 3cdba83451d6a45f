"""
The in-page extraction script, loaded from the packaged asset.

The script is a function expression taking the rule table payload
(rules.to_payload()) and returning {host, url, items}. SCRIPT_VERSION
changes whenever the asset's contract changes.
"""

from __future__ import annotations

from functools import lru_cache
from importlib import resources

from tabwatch.core.errors import CaptureError

SCRIPT_VERSION = 1
ASSET_NAME = "extractor.js"


@lru_cache(maxsize=1)
def load_extractor_script() -> str:
    try:
        source = (
            resources.files("tabwatch.capture")
            .joinpath("assets").joinpath(ASSET_NAME)
            .read_text(encoding="utf-8")
        )
    except (FileNotFoundError, OSError) as e:
        raise CaptureError(f"Extraction script asset missing: {e}") from e
    if f"version {SCRIPT_VERSION}" not in source.splitlines()[0]:
        raise CaptureError(
            f"Extraction script version mismatch (expected {SCRIPT_VERSION})"
        )
    return source
