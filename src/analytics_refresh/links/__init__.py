"""Content link normalization and collection."""

from analytics_refresh.links.normalizer import (
    collect_links,
    is_trackable_url,
    normalize_url,
    strip_tracking_params,
)

__all__ = [
    "collect_links",
    "is_trackable_url",
    "normalize_url",
    "strip_tracking_params",
]
