"""Countries offered for manual selection when the device location is unavailable."""

from __future__ import annotations

COUNTRIES: list[dict[str, str]] = [
    {"code": "SE", "name": "Sweden"},
    {"code": "NO", "name": "Norway"},
    {"code": "DK", "name": "Denmark"},
    {"code": "FI", "name": "Finland"},
    {"code": "DE", "name": "Germany"},
    {"code": "FR", "name": "France"},
    {"code": "ES", "name": "Spain"},
    {"code": "IT", "name": "Italy"},
    {"code": "GB", "name": "United Kingdom"},
    {"code": "NL", "name": "Netherlands"},
    {"code": "BE", "name": "Belgium"},
    {"code": "AT", "name": "Austria"},
    {"code": "CH", "name": "Switzerland"},
    {"code": "PL", "name": "Poland"},
    {"code": "CZ", "name": "Czech Republic"},
    {"code": "PT", "name": "Portugal"},
    {"code": "GR", "name": "Greece"},
    {"code": "IE", "name": "Ireland"},
]

_NAMES_BY_CODE = {c["code"]: c["name"] for c in COUNTRIES}


def country_name(code: str) -> str:
    """Map an ISO alpha-2 code to a display name; unknown codes are returned as given."""
    return _NAMES_BY_CODE.get(code.strip().upper(), code)
