"""Location link resolution for event locations."""

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)

NAVI_SPACE_URL = "https://navi.jyu.fi/space/{id}"
MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query={query}"


@dataclass(frozen=True)
class Space:
    """A university space that can be linked on navi.jyu.fi."""

    space_label: str
    id: str


def parse_spaces(payload: Any) -> list[Space]:
    """Extract spaces from the spaces API payload.

    Expects ``{"items": [{"spaceLabel": "...", "id": "..."}, ...]}``. Items with a
    missing or empty label or a non-string id are skipped.

    Args:
        payload: Decoded JSON document

    Returns:
        List of spaces, empty when the payload has an unrecognized shape
    """
    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        logger.warning("Spaces payload has an unrecognized format")
        return []

    spaces = []
    for item in items:
        if not isinstance(item, dict):
            continue
        label = item.get("spaceLabel")
        space_id = item.get("id")
        if isinstance(label, str) and label and isinstance(space_id, str):
            spaces.append(Space(space_label=label, id=space_id))
    return spaces


class LocationLinker:
    """Chooses the URL for a location.

    Order: the entry's own URL, a university space link when the location
    starts with a known space label (case-sensitive), a Google Maps search when
    enabled, otherwise None.
    """

    def __init__(self, spaces: Optional[list[Space]] = None, maps_fallback: bool = False):
        self.spaces = spaces or []
        self.maps_fallback = maps_fallback

    def url_for(self, location: str, own_url: Optional[str] = None) -> Optional[str]:
        if own_url:
            return own_url

        for space in self.spaces:
            if location.startswith(space.space_label):
                return NAVI_SPACE_URL.format(id=space.id)

        if self.maps_fallback:
            return MAPS_SEARCH_URL.format(query=quote(location, safe=""))

        return None
