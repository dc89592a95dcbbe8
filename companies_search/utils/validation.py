"""
Range and logic checks on search requests
"""
import re
from typing import List

from companies_search.errors import ValidationError
from companies_search.models import SearchFilters

VALID_STATUSES = {
    'active', 'dissolved', 'liquidation', 'receivership', 'converted-closed',
    'voluntary-arrangement', 'insolvency-proceedings', 'administration',
}

VALID_TYPES = {
    'ltd', 'plc', 'old-public-company', 'private-unlimited', 'private-unlimited-nsc',
    'private-limited-guarant-nsc-limited-exemption', 'private-limited-guarant-nsc',
    'private-limited-shares-section-30-exemption', 'llp', 'limited-partnership',
    'scottish-partnership', 'charitable-incorporated-organisation',
    'industrial-and-provident-society', 'registered-society-non-jurisdiction',
    'unregistered-company', 'other', 'uk-establishment',
    'scottish-charitable-incorporated-organisation', 'protected-cell-company',
    'investment-company-with-variable-capital',
    'investment-company-with-variable-capital-securities',
    'investment-company-with-variable-capital-umbrella',
}

SIC_PREFIX_PATTERN = re.compile(r'^\d{2,5}$')

MAX_PAGE_SIZE = 100


def validate_search_filters(filters: SearchFilters) -> List[str]:
    """Return a list of problems with the filters; empty when valid."""
    errors = []

    if filters.incorporated_from and filters.incorporated_to:
        if filters.incorporated_from > filters.incorporated_to:
            errors.append('incorporated_from must be before incorporated_to')

    invalid_statuses = [s for s in filters.company_status if s not in VALID_STATUSES]
    if invalid_statuses:
        errors.append(f"Invalid company_status values: {', '.join(invalid_statuses)}")

    invalid_types = [t for t in filters.company_type if t not in VALID_TYPES]
    if invalid_types:
        errors.append(f"Invalid company_type values: {', '.join(invalid_types)}")

    invalid_sic = [s for s in filters.sic if not SIC_PREFIX_PATTERN.match(s)]
    if invalid_sic:
        errors.append(f"Invalid sic values (expected 2-5 digits): {', '.join(invalid_sic)}")

    if filters.officer_birth_year is not None and filters.officer_birth_year <= 0:
        errors.append('officer_birth_year must be a positive year')

    return errors


def validate_paging(page: int, page_size: int) -> List[str]:
    errors = []
    if page < 1:
        errors.append('page must be 1 or greater')
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        errors.append(f'page_size must be between 1 and {MAX_PAGE_SIZE}')
    return errors


def ensure_valid(filters: SearchFilters, page: int, page_size: int) -> None:
    """Raise ValidationError listing every problem with the request."""
    errors = validate_search_filters(filters) + validate_paging(page, page_size)
    if filters.is_empty():
        # No sentinel query is substituted for a broad search
        errors.append('Provide a keyword or at least one filter')
    if errors:
        raise ValidationError(f"Validation errors: {', '.join(errors)}", problems=errors)
