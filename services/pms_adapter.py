"""
PMS Adapter - colaborador externo

Contrato:
    fetch_guests(property_id) -> FetchResult(guests, complete, errors)
    post_charge(ChargeRequest) -> ChargeResponse

HttpPMSAdapter habla con la API REST del PMS usando requests.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from pydantic import ValidationError as PydanticValidationError

import config
from schemas.pms import ChargeRequest, ChargeResponse, PMSGuest
from utils.errors import PmsAdapterFailure, PmsPostingFailed

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    guests: List[PMSGuest] = field(default_factory=list)
    complete: bool = True
    errors: List[str] = field(default_factory=list)


class PMSAdapter:
    """Interfaz que implementa cada integración de PMS"""

    def fetch_guests(self, property_id: str) -> FetchResult:
        raise NotImplementedError

    def post_charge(self, charge: ChargeRequest) -> ChargeResponse:
        raise NotImplementedError


def parse_guest_entries(entries, property_id: str, page: Optional[int] = None) -> FetchResult:
    """Convierte el payload crudo a PMSGuest; las entradas malformadas se reportan como error"""
    result = FetchResult()
    if not isinstance(entries, list):
        result.complete = False
        result.errors.append(f"Malformed guest list for property {property_id}" + (f" (page {page})" if page else ""))
        return result

    for index, raw in enumerate(entries):
        try:
            result.guests.append(PMSGuest.model_validate(raw))
        except PydanticValidationError as e:
            guest_ref = raw.get("guest_id") if isinstance(raw, dict) else None
            fields = ", ".join(".".join(str(p) for p in err["loc"]) or "entry" for err in e.errors())
            result.complete = False
            result.errors.append(
                f"Malformed guest {guest_ref or f'#{index}'}" + (f" on page {page}" if page else "") + f": {fields}"
            )
    return result


class HttpPMSAdapter(PMSAdapter):

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        timeout: float = None,
        page_size: int = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or config.PMS_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.PMS_API_KEY
        self.timeout = timeout or config.PMS_TIMEOUT_SECONDS
        self.page_size = page_size or config.PMS_PAGE_SIZE
        self.session = session or requests.Session()

    def _headers(self, property_id: str) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "X-Property-ID": property_id,
        }

    def _get_page(self, property_id: str, page: int) -> dict:
        if not self.base_url:
            raise PmsAdapterFailure("PMS integration is not configured (PMS_BASE_URL)")
        url = f"{self.base_url}/properties/{property_id}/guests"
        try:
            response = self.session.get(
                url,
                params={"page": page, "page_size": self.page_size, "status": "in_house"},
                headers=self._headers(property_id),
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise PmsAdapterFailure(f"PMS request timed out after {self.timeout}s (page {page})") from e
        except requests.RequestException as e:
            raise PmsAdapterFailure(f"PMS request failed (page {page}): {e}") from e

        if response.status_code != 200:
            raise PmsAdapterFailure(
                f"PMS API error {response.status_code} (page {page})",
                details=response.text[:500],
            )
        try:
            body = response.json()
        except ValueError as e:
            raise PmsAdapterFailure(f"PMS returned a non-JSON body (page {page})") from e
        if not isinstance(body, dict) or body.get("success") is False:
            message = body.get("message") if isinstance(body, dict) else None
            raise PmsAdapterFailure(f"PMS guest search failed (page {page}): {message or 'malformed body'}")
        return body

    def fetch_guests(self, property_id: str) -> FetchResult:
        """
        Recorre todas las páginas. Si falla la primera se lanza PmsAdapterFailure
        (el orquestador reintenta); si falla una posterior se devuelve lo obtenido
        con complete=False.
        """
        result = FetchResult()
        page = 1
        while True:
            try:
                body = self._get_page(property_id, page)
            except PmsAdapterFailure as e:
                if page == 1:
                    raise
                logger.warning("PMS page %s for %s failed: %s", page, property_id, e.message)
                result.complete = False
                result.errors.append(e.message)
                break

            parsed = parse_guest_entries(body.get("guests"), property_id, page)
            result.guests.extend(parsed.guests)
            result.errors.extend(parsed.errors)
            result.complete = result.complete and parsed.complete

            total_pages = body.get("total_pages")
            if isinstance(total_pages, int):
                if page >= total_pages:
                    break
            elif not body.get("has_more"):
                break
            page += 1

        return result

    def post_charge(self, charge: ChargeRequest) -> ChargeResponse:
        if not self.base_url:
            raise PmsPostingFailed("PMS integration is not configured (PMS_BASE_URL)")
        try:
            response = self.session.post(
                f"{self.base_url}/charges",
                data=charge.model_dump_json(),
                headers=self._headers(charge.property_id),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PmsPostingFailed(f"PMS charge request failed: {e}") from e

        if response.status_code not in (200, 201):
            raise PmsPostingFailed(
                f"PMS charge API error {response.status_code}",
                details=response.text[:500],
            )
        try:
            parsed = ChargeResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise PmsPostingFailed("PMS charge response could not be read") from e
        if not parsed.success:
            raise PmsPostingFailed(f"PMS rejected charge: {parsed.message or 'no message'}")
        return parsed


def get_pms_adapter() -> PMSAdapter:
    return HttpPMSAdapter()
