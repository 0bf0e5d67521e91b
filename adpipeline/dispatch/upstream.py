"""
Helpers operations use to pick a single value out of their input bundle.

The bundle maps each connected source port name to that upstream node's
output. Entries are scanned in bundle order and, inside each entry, keys are
tried in a fixed priority. Explicit config always wins over these.
"""
from typing import Optional, Sequence

from ..core.Interface import InputBundle

MEDIA_KEYS: Sequence[str] = ("video_url", "image_url")
TEXT_KEYS: Sequence[str] = ("script", "hooks", "caption", "text", "variations")


def first_upstream_value(upstream: InputBundle, keys: Sequence[str]) -> Optional[str]:
    for data in upstream.values():
        for key in keys:
            value = data.get(key)
            if value:
                return value
    return None


def get_upstream_url(upstream: InputBundle) -> Optional[str]:
    return first_upstream_value(upstream, MEDIA_KEYS)


def get_upstream_text(upstream: InputBundle) -> Optional[str]:
    return first_upstream_value(upstream, TEXT_KEYS)


def is_usable_url(url: Optional[str]) -> bool:
    # blob: URLs only exist inside the browser that created them
    return bool(url) and not url.startswith("blob:")
