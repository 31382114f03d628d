"""
Address component extraction.

Known urbanisation names first, then keyword patterns
(``urbanización``/``urb.``, street and suburb prefixes), then the trailing
comma-separated segment as the city.
"""

import re
from typing import Optional

from propintel.identity import fold_accents
from propintel.location.schemas import LocationComponents
from propintel.schemas.report import Comparable

_NAME = r"([a-záéíóúñü][a-záéíóúñü\s]*)"

URBANISATION_PATTERNS = (
    re.compile(rf"urbanizaci[oó]n\s+{_NAME}", re.IGNORECASE),
    re.compile(rf"urb\.\s*{_NAME}", re.IGNORECASE),
    re.compile(rf"urbanization\s+{_NAME}", re.IGNORECASE),
)

STREET_PATTERNS = (
    re.compile(rf"\bcalle\s+{_NAME}", re.IGNORECASE),
    re.compile(rf"\bavenida\s+{_NAME}", re.IGNORECASE),
    re.compile(rf"\bplaza\s+{_NAME}", re.IGNORECASE),
    re.compile(rf"\bpaseo\s+{_NAME}", re.IGNORECASE),
    re.compile(rf"\bcamino\s+{_NAME}", re.IGNORECASE),
)

SUBURB_PATTERNS = (
    re.compile(rf"\bbarrio\s+{_NAME}", re.IGNORECASE),
    re.compile(rf"\bzona\s+{_NAME}", re.IGNORECASE),
)

KNOWN_URBANISATIONS: tuple[str, ...] = (
    "marina puerto banús",
    "nueva andalucía",
    "puerto banús",
    "golden mile",
    "sierra blanca",
    "la campana",
    "elviria",
    "las chapas",
    "calahonda",
    "marbella club",
    "puerto deportivo",
    "san pedro alcántara",
    "benahavís",
    "costabella",
    "artola",
    "cabopino",
    "nagueles",
    "rio real",
    "marina banús",
)

_PROVINCE_CODE = re.compile(r"^[A-Z]{2}$")
_POSTAL = re.compile(r"\b\d{4,5}\b")


def clean_name(value: str) -> str:
    return " ".join(value.lower().split())


def _first_match(patterns, address: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(address)
        if match:
            name = clean_name(match.group(1))
            if name:
                return name
    return None


def _known_urbanisation(address: str) -> Optional[str]:
    folded = fold_accents(address.lower())
    for known in KNOWN_URBANISATIONS:
        if fold_accents(known) in folded:
            return known
    return None


def _trailing_city(address: str) -> Optional[str]:
    segments = [s.strip() for s in address.split(",") if s.strip()]
    while segments and (_PROVINCE_CODE.match(segments[-1]) or segments[-1].isdigit()):
        segments.pop()
    if len(segments) < 2:
        return None
    city = clean_name(_POSTAL.sub("", segments[-1]))
    return city or None


def parse_address(address: str) -> LocationComponents:
    """Split an address into urbanisation, suburb, street and city."""
    address = address or ""
    return LocationComponents(
        urbanisation=_first_match(URBANISATION_PATTERNS, address) or _known_urbanisation(address),
        suburb=_first_match(SUBURB_PATTERNS, address),
        street=_first_match(STREET_PATTERNS, address),
        city=_trailing_city(address),
    )


def comparable_components(comparable: Comparable) -> LocationComponents:
    """Explicit location fields on a comparable win over parsing."""
    parsed = parse_address(comparable.address)
    return LocationComponents(
        urbanisation=clean_name(comparable.urbanisation) if comparable.urbanisation else parsed.urbanisation,
        suburb=clean_name(comparable.suburb) if comparable.suburb else parsed.suburb,
        street=parsed.street,
        city=clean_name(comparable.city) if comparable.city else parsed.city,
    )
