"""
Tests for filter validation and SIC code lookup
"""
from datetime import date

import pytest

from companies_search.errors import ValidationError
from companies_search.models import SearchFilters
from companies_search.utils.sic_codes import get_all_sic_codes, get_sic_description, search_sic_codes
from companies_search.utils.validation import ensure_valid, validate_paging, validate_search_filters


class TestValidateSearchFilters:
    def test_valid_filters(self):
        filters = SearchFilters(
            keyword="acme",
            company_status=["active"],
            company_type=["ltd"],
            sic=["62", "62010"],
            incorporated_from=date(2010, 1, 1),
            incorporated_to=date(2010, 1, 1),
        )
        assert validate_search_filters(filters) == []

    def test_collects_every_problem(self):
        filters = SearchFilters(
            company_status=["alive"],
            company_type=["corp"],
            sic=["6a"],
            incorporated_from=date(2021, 1, 1),
            incorporated_to=date(2020, 1, 1),
            officer_birth_year=0,
        )
        assert len(validate_search_filters(filters)) == 5

    def test_paging_bounds(self):
        assert validate_paging(1, 100) == []
        assert len(validate_paging(0, 101)) == 2


class TestEnsureValid:
    def test_rejects_broad_search(self):
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid(SearchFilters(), 1, 20)
        assert "keyword" in exc_info.value.message

    def test_officer_filter_alone_is_enough(self):
        ensure_valid(SearchFilters(officer_birth_year=1950), 1, 20)


class TestSicCodes:
    def test_code_passes_through(self):
        assert search_sic_codes("6201") == ["6201"]

    def test_keyword_search(self):
        codes = search_sic_codes("software")
        assert "62010" in codes
        assert "62020" in codes

    def test_description_search_is_case_insensitive(self):
        assert "69102" in search_sic_codes("SOLICITORS")

    def test_descriptions(self):
        assert get_sic_description("62010") == "Computer programming activities"
        assert get_sic_description("00000") == "00000"

    def test_all_codes_sorted(self):
        codes = [entry["code"] for entry in get_all_sic_codes()]
        assert codes == sorted(codes)
