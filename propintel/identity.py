"""
Deterministic identifiers.

Every collection key is derived here so that the same property, region
or prompt always lands on the same record.
"""

import hashlib
import re
import unicodedata
import uuid

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def fold_accents(text: str) -> str:
    """Strip diacritics: 'Málaga' -> 'Malaga'."""
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Lowercase, accent-folded, whitespace-collapsed form of a name."""
    return " ".join(fold_accents(text or "").lower().split())


def slugify(text: str) -> str:
    """'Nueva Andalucía' -> 'nueva-andalucia'."""
    return _NON_SLUG.sub("-", normalize_text(text)).strip("-")


def property_id(address: str, city: str, province: str) -> str:
    """Stable 16-hex-char id for a property location."""
    key = "-".join(normalize_text(part) for part in (address, city, province))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def region_id(region_type: str, name: str) -> str:
    return f"{region_type}_{slugify(name)}"


def comparable_region_id(city: str, province: str) -> str:
    return f"{slugify(city)}_{slugify(province)}"


def intelligence_id(region: str, property_type: str) -> str:
    return f"{region}_{slugify(property_type)}"


def prompt_id(category: str, template: str) -> str:
    """Hash of the full template so edits never collide with older versions."""
    digest = hashlib.sha256(f"{category}\n{template}".encode("utf-8")).hexdigest()
    return f"prompt_{digest[:16]}"


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"
