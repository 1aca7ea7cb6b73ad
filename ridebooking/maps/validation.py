"""Judge whether a geocoded place is specific enough for a pickup or drop-off.

A city, province or postcode on its own is too broad to send a driver to.
Anything carrying a street, building, landmark or neighbourhood type is
accepted, and so is a place the maps service could not check.
"""

from __future__ import annotations

from dataclasses import dataclass

from .base import GeocodeResult

BROAD_TYPES = {
    "country",
    "administrative_area_level_1",
    "administrative_area_level_2",
    "administrative_area_level_3",
    "locality",
    "postal_code",
    "colloquial_area",
}

SPECIFIC_TYPES = {
    "street_address",
    "premise",
    "subpremise",
    "route",
    "intersection",
    "establishment",
    "point_of_interest",
    "airport",
    "transit_station",
    "bus_station",
    "train_station",
    "hospital",
    "shopping_mall",
    "university",
    "school",
    "park",
    "neighborhood",
    "sublocality",
    "sublocality_level_1",
    "sublocality_level_2",
}


@dataclass
class LocationCheck:
    accepted: bool
    address: str
    reason: str = ""
    verified: bool = True


def assess_location(text: str, result: GeocodeResult | None) -> LocationCheck:
    """Accept or reject ``text`` given what the geocoder made of it.

    ``result`` is None when the maps service was unavailable; the text is
    then accepted unverified. An accepted place carries the geocoder's
    formatted address.
    """
    text = text.strip()
    if result is None:
        return LocationCheck(accepted=True, address=text, verified=False)

    if not result.found:
        return LocationCheck(
            accepted=False,
            address=text,
            reason=f'I couldn\'t find "{text}" on the map.',
        )

    types = set(result.types)
    if types & BROAD_TYPES and not types & SPECIFIC_TYPES:
        return LocationCheck(
            accepted=False,
            address=text,
            reason=f'"{text}" is too broad for a pickup or drop-off.',
        )

    return LocationCheck(accepted=True, address=result.formatted_address or text)
