"""
Shared fixtures: an in-process stand-in for the Companies House API and a controllable clock
"""
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from companies_search.db import create_db_engine, init_db
from companies_search.errors import CapabilityUnavailable, UpstreamError
from companies_search.services.enrichment import EnrichmentPipeline
from companies_search.services.search_engine import FilterResolutionEngine


def advanced_item(
    number: str,
    name: Optional[str] = None,
    status: str = "active",
    company_type: str = "ltd",
    sic_codes: Optional[List[str]] = None,
    postal_code: str = "SW1A 1AA",
    locality: str = "London",
    created: str = "2015-06-01",
) -> Dict[str, Any]:
    return {
        "company_number": number,
        "company_name": name or f"COMPANY {number} LTD",
        "company_status": status,
        "company_type": company_type,
        "date_of_creation": created,
        "sic_codes": sic_codes if sic_codes is not None else ["62010"],
        "registered_office_address": {
            "locality": locality,
            "postal_code": postal_code,
            "country": "England",
        },
    }


def search_item(number: str, title: Optional[str] = None, postal_code: str = "SW1A 1AA") -> Dict[str, Any]:
    return {
        "company_number": number,
        "title": title or f"COMPANY {number} LTD",
        "company_status": "active",
        "company_type": "ltd",
        "date_of_creation": "2015-06-01",
        "address": {"locality": "London", "postal_code": postal_code},
    }


def profile(number: str, sic_codes: List[str], status: str = "active", postal_code: str = "SW1A 1AA") -> Dict[str, Any]:
    return {
        "company_number": number,
        "company_name": f"COMPANY {number} LTD",
        "company_status": status,
        "type": "ltd",
        "date_of_creation": "2015-06-01",
        "sic_codes": sic_codes,
        "registered_office_address": {"locality": "London", "postal_code": postal_code},
    }


def officer(name: str, birth_year: Optional[int], resigned_on: Optional[str] = None) -> Dict[str, Any]:
    item: Dict[str, Any] = {
        "name": name,
        "officer_role": "director",
        "appointed_on": "2010-01-01",
    }
    if birth_year is not None:
        item["date_of_birth"] = {"month": 3, "year": birth_year}
    if resigned_on:
        item["resigned_on"] = resigned_on
    return item


class FakeCompaniesHouse:
    """Serves canned payloads through the same four operations as CompaniesHouseAPI."""

    def __init__(
        self,
        advanced_items: Optional[List[Dict[str, Any]]] = None,
        keyword_items: Optional[List[Dict[str, Any]]] = None,
        profiles: Optional[Dict[str, Dict[str, Any]]] = None,
        officers: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        advanced_available: bool = True,
        range_error_past_end: bool = False,
        failing: tuple = (),
    ):
        self.advanced_items = advanced_items or []
        self.keyword_items = keyword_items or []
        self.profiles = profiles or {}
        self.officers = officers or {}
        self.advanced_available = advanced_available
        self.range_error_past_end = range_error_past_end
        self.failing = set(failing)
        self.calls = defaultdict(list)
        self._lock = threading.Lock()

    def _record(self, name, *args):
        with self._lock:
            self.calls[name].append(args)

    def advanced_search(self, filters, start_index=0, size=20):
        self._record("advanced_search", filters, start_index, size)
        if not self.advanced_available:
            raise CapabilityUnavailable()
        if self.range_error_past_end and start_index >= len(self.advanced_items) and start_index > 0:
            return {"items": [], "hits": None}
        return {
            "items": self.advanced_items[start_index:start_index + size],
            "hits": len(self.advanced_items),
        }

    def search_by_keyword(self, keyword, page=1, page_size=20):
        self._record("search_by_keyword", keyword, page, page_size)
        start = (page - 1) * page_size
        return {
            "items": self.keyword_items[start:start + page_size],
            "total_results": len(self.keyword_items),
        }

    def get_company_profile(self, company_number):
        self._record("get_company_profile", company_number)
        if company_number in self.failing:
            raise UpstreamError(500, "boom")
        if company_number not in self.profiles:
            raise UpstreamError(404, f"Company {company_number} not found")
        return self.profiles[company_number]

    def get_company_officers(self, company_number):
        self._record("get_company_officers", company_number)
        if company_number in self.failing:
            raise UpstreamError(504, "timed out")
        return {"items": self.officers.get(company_number, [])}


class FakeClock:
    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    return init_db(engine)


@pytest.fixture
def snapshots():
    return Mock()


def make_engine(api, snapshots=None, cache=None, **kwargs) -> FilterResolutionEngine:
    return FilterResolutionEngine(
        api,
        cache=cache,
        snapshots=snapshots,
        enrichment=EnrichmentPipeline(api, cache, batch_delay=0),
        page_delay=0,
        **kwargs
    )
