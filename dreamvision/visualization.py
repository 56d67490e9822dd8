"""Pick an illustrative image for a dream by keyword."""

from __future__ import annotations

from types import MappingProxyType
from urllib.parse import quote

DEFAULT_STYLE = "dreamy"

_IMAGE_PARAMS = "?auto=compress&cs=tinysrgb&w=800"

# First matching keyword wins, in this order.
IMAGE_MAP = MappingProxyType(
    {
        "ocean": "https://images.pexels.com/photos/1001682/pexels-photo-1001682.jpeg" + _IMAGE_PARAMS,
        "mountain": "https://images.pexels.com/photos/1271619/pexels-photo-1271619.jpeg" + _IMAGE_PARAMS,
        "forest": "https://images.pexels.com/photos/1005417/pexels-photo-1005417.jpeg" + _IMAGE_PARAMS,
        "night": "https://images.pexels.com/photos/1624438/pexels-photo-1624438.jpeg" + _IMAGE_PARAMS,
        "city": "https://images.pexels.com/photos/1519088/pexels-photo-1519088.jpeg" + _IMAGE_PARAMS,
    }
)
DEFAULT_IMAGE = "https://images.pexels.com/photos/1275929/pexels-photo-1275929.jpeg" + _IMAGE_PARAMS


def visualization_url(content: str, style: str = DEFAULT_STYLE) -> str:
    text = (content or "").lower()
    style_value = quote((style or DEFAULT_STYLE).strip() or DEFAULT_STYLE)
    for keyword, url in IMAGE_MAP.items():
        if keyword in text:
            return f"{url}&style={style_value}"
    return f"{DEFAULT_IMAGE}&style={style_value}"
