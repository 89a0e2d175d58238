"""Address geocoding through the Google Geocoding API."""

from __future__ import annotations

from dataclasses import dataclass

from soldcomp.common.http import HttpClient, HttpRequestError


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float
    formatted_address: str = ""


def parse_geocode_payload(payload: dict) -> GeoPoint | None:
    if payload.get("status") != "OK":
        return None
    results = payload.get("results") or []
    if not results:
        return None
    location = (results[0].get("geometry") or {}).get("location") or {}
    lat, lng = location.get("lat"), location.get("lng")
    if lat is None or lng is None:
        return None
    return GeoPoint(lat=float(lat), lng=float(lng), formatted_address=results[0].get("formatted_address", ""))


class Geocoder:
    """Geocodes "address, postcode, UK" strings, caching answers for the run.

    Every failure returns None. Answered misses such as ZERO_RESULTS are
    cached as well; transport failures are not, so a later call may retry.
    """

    def __init__(self, client: HttpClient, *, endpoint: str, api_key: str | None) -> None:
        self.client = client
        self.endpoint = endpoint
        self.api_key = api_key
        self.cache: dict[str, GeoPoint | None] = {}
        self.last_status: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def geocode(self, address: str, postcode: str) -> GeoPoint | None:
        if not self.configured or not address or not postcode:
            return None
        query = f"{address}, {postcode}, UK"
        key = query.lower().strip()
        if key in self.cache:
            return self.cache[key]

        try:
            payload = self.client.get_json(
                self.endpoint,
                params={"address": query, "key": self.api_key, "region": "uk"},
            )
        except HttpRequestError as exc:
            self.last_status = f"HTTP_ERROR: {exc}"
            return None

        self.last_status = payload.get("status") if isinstance(payload, dict) else None
        point = parse_geocode_payload(payload) if isinstance(payload, dict) else None
        self.cache[key] = point
        return point
