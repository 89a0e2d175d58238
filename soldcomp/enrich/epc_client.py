"""EPC open-data register lookups by postcode."""

from __future__ import annotations

from urllib.parse import quote_plus

from soldcomp.common.http import HttpClient, HttpRequestError
from soldcomp.common.models import CandidateRecord
from soldcomp.common.postcode import clean_postcode

DEFAULT_PAGE_SIZE = 100


def epc_search_url(search_base_url: str, postcode: str) -> str:
    """Public "find a certificate" page for a postcode (spaces become ``+``)."""
    return f"{search_base_url}?postcode={quote_plus(clean_postcode(postcode))}"


def _safe_float(value: object) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _row_address(row: dict) -> str:
    address = (row.get("address") or "").strip()
    if address:
        return address
    parts = [row.get(key) for key in ("address1", "address2", "address3")]
    return ", ".join(part.strip() for part in parts if part and part.strip())


def parse_epc_rows(payload: dict, certificate_base_url: str) -> list[CandidateRecord]:
    candidates = []
    for row in payload.get("rows") or []:
        address = _row_address(row)
        if not address:
            continue
        number = (row.get("certificate-number") or "").strip()
        rating = (row.get("current-energy-rating") or "").strip().upper() or None
        candidates.append(
            CandidateRecord(
                address=address,
                rating=rating,
                floor_area=_safe_float(row.get("total-floor-area")),
                identifier=number or row.get("lmk-key"),
                postcode=clean_postcode(row.get("postcode")) or None,
                certificate_url=f"{certificate_base_url.rstrip('/')}/{number}" if number else None,
            )
        )
    return candidates


class EpcCandidateSource:
    """Certificate candidates for one postcode from the EPC open-data API.

    Failures come back as an empty list; the caller treats that the same as a
    postcode with no certificates and flags the record for review.
    """

    def __init__(
        self,
        client: HttpClient,
        *,
        endpoint: str,
        certificate_base_url: str,
        email: str | None,
        api_key: str | None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.client = client
        self.endpoint = endpoint
        self.certificate_base_url = certificate_base_url
        self.auth = (email, api_key) if email and api_key else None
        self.page_size = page_size
        self.last_error: str | None = None

    @property
    def configured(self) -> bool:
        return self.auth is not None

    def candidates_for_postcode(self, postcode: str) -> list[CandidateRecord]:
        self.last_error = None
        cleaned = clean_postcode(postcode)
        if not cleaned or not self.configured:
            return []
        try:
            payload = self.client.get_json(
                self.endpoint,
                params={"postcode": cleaned, "size": self.page_size},
                auth=self.auth,
            )
        except HttpRequestError as exc:
            self.last_error = str(exc)
            return []
        if not isinstance(payload, dict):
            self.last_error = f"unexpected EPC payload type: {type(payload).__name__}"
            return []
        return parse_epc_rows(payload, self.certificate_base_url)
