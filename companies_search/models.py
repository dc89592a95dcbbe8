"""
Search filters, company/officer records and their mapping from Companies House payloads
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Strategy(str, Enum):
    """How a request is served against the upstream API."""

    DIRECT_ADVANCED_SEARCH = "direct_advanced_search"
    ADVANCED_THEN_FILTER = "advanced_then_filter"
    KEYWORD_THEN_ENRICH = "keyword_then_enrich"
    OFFICER_FILTER = "officer_filter"


class SearchFilters(BaseModel):
    model_config = ConfigDict(frozen=True)

    keyword: Optional[str] = None
    company_status: Tuple[str, ...] = ()
    company_type: Tuple[str, ...] = ()
    sic: Tuple[str, ...] = ()
    incorporated_from: Optional[date] = None
    incorporated_to: Optional[date] = None
    postcode_prefix: Optional[str] = None
    locality: Optional[str] = None
    # Matches when an active officer was born strictly before this year
    officer_birth_year: Optional[int] = None

    @field_validator("keyword", "postcode_prefix", "locality", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("company_status", "company_type", "sic", mode="before")
    @classmethod
    def _clean_values(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        return tuple(str(v).strip() for v in value if str(v).strip())

    def is_empty(self) -> bool:
        """True when no keyword and no filter field is set."""
        return not any([
            self.keyword,
            self.company_status,
            self.company_type,
            self.sic,
            self.incorporated_from,
            self.incorporated_to,
            self.postcode_prefix,
            self.locality,
            self.officer_birth_year is not None,
        ])

    def without_officer_filter(self) -> "SearchFilters":
        return self.model_copy(update={"officer_birth_year": None})


class RegisteredOffice(BaseModel):
    model_config = ConfigDict(frozen=True)

    locality: Optional[str] = None
    postal_code: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None


class CompanyRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_number: str
    company_name: str = ""
    status: str = ""
    type: str = ""
    incorporation_date: Optional[date] = None
    registered_office: RegisteredOffice = Field(default_factory=RegisteredOffice)
    sic_codes: Tuple[str, ...] = ()


class DateOfBirth(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: Optional[int] = None
    year: Optional[int] = None


class OfficerRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    role: str = ""
    appointed_on: Optional[date] = None
    resigned_on: Optional[date] = None
    date_of_birth: Optional[DateOfBirth] = None
    nationality: Optional[str] = None
    occupation: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.resigned_on is None

    @property
    def birth_year(self) -> Optional[int]:
        return self.date_of_birth.year if self.date_of_birth else None


class CachedEntity(BaseModel):
    """A cache entry as held by one of the cache tiers."""

    model_config = ConfigDict(frozen=True)

    key: str
    kind: str
    payload: Dict[str, Any]
    fetched_at: datetime
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at


class SearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: List[CompanyRecord]
    total: int
    token: str
    page: int
    page_size: int
    strategy: Strategy
    # True when the candidate ceiling was hit and total only covers scanned candidates
    truncated: bool = False


class FilterPreset(BaseModel):
    """A named set of filters saved for reuse."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    filters: SearchFilters
    created_at: datetime


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _office_from_address(address: Optional[Dict[str, Any]]) -> RegisteredOffice:
    address = address or {}
    return RegisteredOffice(
        locality=address.get('locality'),
        postal_code=address.get('postal_code'),
        region=address.get('region'),
        country=address.get('country'),
    )


def company_from_search_item(item: Dict[str, Any]) -> CompanyRecord:
    """Map a /search/companies item. Keyword search carries no SIC codes."""
    return CompanyRecord(
        company_number=item.get('company_number', ''),
        company_name=item.get('title') or item.get('company_name', ''),
        status=item.get('company_status', ''),
        type=item.get('company_type', ''),
        incorporation_date=_parse_date(item.get('date_of_creation')),
        registered_office=_office_from_address(item.get('address')),
    )


def company_from_advanced_item(item: Dict[str, Any]) -> CompanyRecord:
    """Map an /advanced-search/companies item."""
    return CompanyRecord(
        company_number=item.get('company_number', ''),
        company_name=item.get('company_name', ''),
        status=item.get('company_status', ''),
        type=item.get('company_type', ''),
        incorporation_date=_parse_date(item.get('date_of_creation')),
        registered_office=_office_from_address(item.get('registered_office_address')),
        sic_codes=tuple(item.get('sic_codes') or ()),
    )


def company_from_profile(profile: Dict[str, Any]) -> CompanyRecord:
    """Map a /company/{number} profile."""
    return CompanyRecord(
        company_number=profile.get('company_number', ''),
        company_name=profile.get('company_name', ''),
        status=profile.get('company_status', ''),
        type=profile.get('type') or profile.get('company_type', ''),
        incorporation_date=_parse_date(profile.get('date_of_creation')),
        registered_office=_office_from_address(profile.get('registered_office_address')),
        sic_codes=tuple(profile.get('sic_codes') or ()),
    )


def officers_from_payload(payload: Dict[str, Any]) -> List[OfficerRecord]:
    """Map a /company/{number}/officers list."""
    officers = []
    for item in payload.get('items', []):
        dob = item.get('date_of_birth')
        officers.append(OfficerRecord(
            name=item.get('name', ''),
            role=item.get('officer_role', ''),
            appointed_on=_parse_date(item.get('appointed_on')),
            resigned_on=_parse_date(item.get('resigned_on')),
            date_of_birth=DateOfBirth(month=dob.get('month'), year=dob.get('year')) if dob else None,
            nationality=item.get('nationality'),
            occupation=item.get('occupation'),
        ))
    return officers
