"""
Companies House API client
"""
import requests
import time
from requests.auth import HTTPBasicAuth
from typing import Dict, Any, Optional
import logging

from companies_search.config import (
    COMPANIES_HOUSE_API_KEY,
    COMPANIES_HOUSE_BASE_URL,
    REQUEST_TIMEOUT,
    DEFAULT_RETRY_AFTER,
)
from companies_search.errors import CapabilityUnavailable, UpstreamError
from companies_search.models import SearchFilters

logger = logging.getLogger(__name__)


def build_advanced_search_params(filters: SearchFilters) -> Dict[str, Any]:
    """
    Map filters onto /advanced-search/companies parameters.
    Absent filters are omitted. Postcode prefix and officer birth year have no
    upstream parameter and are never sent.
    """
    params: Dict[str, Any] = {}
    if filters.keyword:
        params['company_name_includes'] = filters.keyword
    if filters.company_status:
        params['company_status'] = ','.join(filters.company_status)
    if filters.company_type:
        params['company_type'] = ','.join(filters.company_type)
    if filters.sic:
        params['sic_codes'] = ','.join(filters.sic)
    if filters.incorporated_from:
        params['incorporated_from'] = filters.incorporated_from.isoformat()
    if filters.incorporated_to:
        params['incorporated_to'] = filters.incorporated_to.isoformat()
    if filters.locality:
        params['location'] = filters.locality
    return params


class CompaniesHouseAPI:
    """Client for Companies House API"""

    def __init__(
        self,
        api_key: str = COMPANIES_HOUSE_API_KEY,
        base_url: str = COMPANIES_HOUSE_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        if not api_key:
            logger.warning("COMPANIES_HOUSE_API_KEY not set - upstream calls will be rejected")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.auth = HTTPBasicAuth(api_key, '')
        self.session = session or requests.Session()
        self.session.auth = self.auth
        self.session.headers.update({'Accept': 'application/json'})

    def search_by_keyword(self, keyword: str, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        """
        Keyword search over /search/companies.
        Returns {'items': [...], 'total_results': int}. Pages are 1-based.
        """
        params = {
            'q': keyword,
            'items_per_page': page_size,
            'start_index': (page - 1) * page_size
        }
        response = self._make_request('/search/companies', params)
        if response is None:
            return {'items': [], 'total_results': 0}
        return {
            'items': response.get('items', []),
            'total_results': response.get('total_results', 0)
        }

    def advanced_search(self, filters: SearchFilters, start_index: int = 0, size: int = 20) -> Dict[str, Any]:
        """
        Multi-field search over /advanced-search/companies.
        Returns {'items': [...], 'hits': int or None}. hits is None when the
        upstream refused the range (start_index past the end).
        A 404 from this endpoint means the capability is unavailable, not "no data".
        """
        params = build_advanced_search_params(filters)
        params['start_index'] = start_index
        params['size'] = size

        try:
            response = self._make_request('/advanced-search/companies', params)
        except UpstreamError as e:
            if e.status == 404:
                logger.warning("Advanced search endpoint returned 404")
                raise CapabilityUnavailable() from e
            raise

        if response is None:
            return {'items': [], 'hits': None}
        return {
            'items': response.get('items', []),
            'hits': response.get('hits', 0)
        }

    def get_company_profile(self, company_number: str) -> Dict[str, Any]:
        return self._get_company_resource(f'/company/{company_number}', company_number)

    def get_company_officers(self, company_number: str) -> Dict[str, Any]:
        return self._get_company_resource(
            f'/company/{company_number}/officers',
            company_number,
            params={'items_per_page': 100}
        )

    def _get_company_resource(
        self,
        endpoint: str,
        company_number: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        try:
            response = self._make_request(endpoint, params)
        except UpstreamError as e:
            if e.status == 404:
                raise UpstreamError(404, f"Company {company_number} not found") from e
            raise
        if response is None:
            raise UpstreamError(404, f"Company {company_number} not found")
        return response

    def _make_request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Make a request to the Companies House API.
        A 429 is retried once after the Retry-After delay; a second 429 in a row
        is raised like any other non-2xx response.
        """
        url = f"{self.base_url}{endpoint}"

        for attempt in range(2):
            try:
                # auth passed per call so session or environment settings cannot replace the key
                response = self.session.get(url, params=params, auth=self.auth, timeout=self.timeout)
            except requests.exceptions.Timeout as e:
                logger.error(f"Timeout calling {endpoint}: {e}")
                raise UpstreamError(504, f"Companies House API timed out: {endpoint}") from e
            except requests.exceptions.RequestException as e:
                logger.error(f"Request error calling {endpoint}: {e}")
                raise UpstreamError(502, f"Companies House API unreachable: {e}") from e

            if response.status_code == 429 and attempt == 0:
                wait = self._retry_after(response)
                logger.warning(f"Rate limited on {endpoint}, waiting {wait}s...")
                time.sleep(wait)
                continue

            if response.status_code == 416:
                # Range not satisfiable - start_index past the end of results
                return None

            if 200 <= response.status_code < 300:
                return response.json()

            message = self._error_message(response)
            if response.status_code >= 500 or response.status_code == 429:
                logger.error(f"API error {response.status_code} on {endpoint}: {message}")
            raise UpstreamError(response.status_code, message)

        # Unreachable: the second iteration always returns or raises
        raise UpstreamError(429, "Rate limited")

    @staticmethod
    def _retry_after(response: requests.Response) -> float:
        value = response.headers.get('Retry-After')
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            return DEFAULT_RETRY_AFTER
        return seconds if seconds >= 0 else DEFAULT_RETRY_AFTER

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get('error'):
            return str(body['error'])
        if isinstance(body, dict) and body.get('errors'):
            first = body['errors'][0]
            if isinstance(first, dict) and first.get('error'):
                return str(first['error'])
        return 'Companies House API error'
