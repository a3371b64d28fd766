from typing import Any

from django.conf import settings


DEFAULTS = {
    "NORMALIZER_URL": "http://localhost:8001",
    "NORMALIZER_TIMEOUT": 30,
    "STRICT_WEIGHT_VALIDATION": False,
    "REQUIRE_AUTH": False,
    "RANKING_CACHE_TIMEOUT": 60 * 60,
}


def get_setting(name: str) -> Any:
    """Return ``settings.RANKINGS[name]`` falling back to the app default."""
    overrides = getattr(settings, "RANKINGS", {}) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
