"""
Filtering utilities for company data
"""
from typing import Iterable, List, Sequence, TypeVar

from companies_search.models import CompanyRecord, OfficerRecord, SearchFilters

T = TypeVar('T')


def sic_matches(sic_codes: Iterable[str], prefixes: Iterable[str]) -> bool:
    """True if any of the company's SIC codes starts with any requested prefix."""
    prefixes = list(prefixes)
    return any(code.startswith(prefix) for code in sic_codes for prefix in prefixes)


def has_officer_born_before(officers: Iterable[OfficerRecord], year: int) -> bool:
    """
    True if any active officer (no resignation date) has a known birth year
    strictly before the given year. Redacted birth dates never match.
    """
    for officer in officers:
        if not officer.is_active:
            continue
        if officer.birth_year is not None and officer.birth_year < year:
            return True
    return False


def matches_postcode_prefix(company: CompanyRecord, prefix: str) -> bool:
    postal_code = company.registered_office.postal_code
    if not postal_code:
        return False
    return postal_code.upper().startswith(prefix.upper())


def matches_locality(company: CompanyRecord, locality: str) -> bool:
    value = company.registered_office.locality
    if not value:
        return False
    return locality.lower() in value.lower()


def matches_filters(company: CompanyRecord, filters: SearchFilters) -> bool:
    """
    Check a company against every filter except the officer birth year, which
    needs officer data.
    """
    if filters.company_status and company.status not in filters.company_status:
        return False

    if filters.company_type and company.type not in filters.company_type:
        return False

    if filters.sic and not sic_matches(company.sic_codes, filters.sic):
        return False

    if filters.incorporated_from or filters.incorporated_to:
        if company.incorporation_date is None:
            return False
        if filters.incorporated_from and company.incorporation_date < filters.incorporated_from:
            return False
        if filters.incorporated_to and company.incorporation_date > filters.incorporated_to:
            return False

    if filters.postcode_prefix and not matches_postcode_prefix(company, filters.postcode_prefix):
        return False

    if filters.locality and not matches_locality(company, filters.locality):
        return False

    return True


def filter_by_postcode_prefix(companies: List[CompanyRecord], prefix: str) -> List[CompanyRecord]:
    """
    Filter companies to those whose registered office postcode starts with the prefix.
    Case-insensitive matching.
    """
    if not prefix:
        return companies
    return [c for c in companies if matches_postcode_prefix(c, prefix)]


def deduplicate_companies(companies: Iterable[CompanyRecord]) -> List[CompanyRecord]:
    """
    Remove duplicate companies based on company_number, keeping the first occurrence.
    """
    seen = set()
    unique = []
    for company in companies:
        if company.company_number and company.company_number not in seen:
            seen.add(company.company_number)
            unique.append(company)
    return unique


def paginate(items: Sequence[T], page: int, page_size: int) -> List[T]:
    """1-based page slice. Pages past the end are empty."""
    start = (page - 1) * page_size
    return list(items[start:start + page_size])


def needs_company_profile(filters: SearchFilters) -> bool:
    """True if any filter other than keyword and officer birth year must be checked locally."""
    return any([
        filters.company_status,
        filters.company_type,
        filters.sic,
        filters.incorporated_from,
        filters.incorporated_to,
        filters.postcode_prefix,
        filters.locality,
    ])
