"""Organization slug helpers."""

import re

MAX_SLUG_LENGTH = 50

_SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,49}$")


def generate_slug(name: str) -> str:
    """Derive a URL-safe slug from an organization name.

    ``"St. Mary's  Choir"`` -> ``"st-marys-choir"``.
    """
    slug = name.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:MAX_SLUG_LENGTH].strip("-")


def is_valid_slug(slug: str) -> bool:
    return bool(_SLUG_PATTERN.match(slug))
