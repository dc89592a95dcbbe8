"""
Filter resolution: picks how a filtered search is served upstream, applies the
filters the upstream cannot, paginates the filtered collection and snapshots it
for export.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from companies_search.config import (
    ENRICHMENT_CANDIDATE_LIMIT,
    ITEMS_PER_PAGE,
    KEYWORD_PAGE_SIZE,
    RATE_LIMIT_DELAY,
)
from companies_search.errors import CapabilityUnavailable, SearchCancelled, ValidationError
from companies_search.models import (
    CompanyRecord,
    SearchFilters,
    SearchResult,
    Strategy,
    company_from_advanced_item,
    company_from_search_item,
)
from companies_search.services.cache import CacheKind, ResultCache, search_cache_key
from companies_search.services.companies_house import CompaniesHouseAPI
from companies_search.services.enrichment import EnrichmentPipeline, ProgressCallback
from companies_search.services.snapshot_store import SnapshotStore
from companies_search.utils.filters import (
    deduplicate_companies,
    filter_by_postcode_prefix,
    needs_company_profile,
    paginate,
)
from companies_search.utils.validation import ensure_valid

logger = logging.getLogger(__name__)


@dataclass
class _Outcome:
    page_items: List[CompanyRecord]
    total: int
    # Everything the strategy materialized; this is what gets snapshotted
    collection: List[CompanyRecord]
    strategy: Strategy
    truncated: bool = False


def new_token() -> str:
    return secrets.token_hex(16)


class FilterResolutionEngine:
    def __init__(
        self,
        api: CompaniesHouseAPI,
        cache: Optional[ResultCache] = None,
        snapshots: Optional[SnapshotStore] = None,
        enrichment: Optional[EnrichmentPipeline] = None,
        candidate_limit: int = ENRICHMENT_CANDIDATE_LIMIT,
        candidate_page_size: int = ITEMS_PER_PAGE,
        keyword_page_size: int = KEYWORD_PAGE_SIZE,
        page_delay: float = RATE_LIMIT_DELAY,
        token_factory: Callable[[], str] = new_token
    ):
        self.api = api
        self.cache = cache
        self.snapshots = snapshots
        self.enrichment = enrichment or EnrichmentPipeline(api, cache)
        self.candidate_limit = candidate_limit
        self.candidate_page_size = candidate_page_size
        self.keyword_page_size = keyword_page_size
        self.page_delay = page_delay
        self.token_factory = token_factory
        self._handlers: Dict[Strategy, Callable[..., _Outcome]] = {
            Strategy.DIRECT_ADVANCED_SEARCH: self._direct_advanced_search,
            Strategy.ADVANCED_THEN_FILTER: self._advanced_then_filter,
            Strategy.KEYWORD_THEN_ENRICH: self._keyword_then_enrich,
            Strategy.OFFICER_FILTER: self._officer_filter,
        }

    @staticmethod
    def select_strategy(filters: SearchFilters) -> Strategy:
        if filters.officer_birth_year is not None:
            return Strategy.OFFICER_FILTER
        if filters.postcode_prefix:
            # Advanced search has no postcode-prefix parameter
            return Strategy.ADVANCED_THEN_FILTER
        return Strategy.DIRECT_ADVANCED_SEARCH

    def resolve(
        self,
        filters: SearchFilters,
        page: int = 1,
        page_size: int = 20,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> SearchResult:
        """
        Run a filtered search and return one page of the filtered collection plus
        an export token for the whole collection.
        """
        ensure_valid(filters, page, page_size)

        strategy = self.select_strategy(filters)
        logger.info(f"Resolving search with {strategy.value}: page={page} page_size={page_size}")

        try:
            outcome = self._handlers[strategy](filters, page, page_size, on_progress, cancel_event)
        except CapabilityUnavailable:
            if strategy is Strategy.OFFICER_FILTER:
                raise
            logger.warning("Advanced search unavailable, falling back to keyword search with enrichment")
            outcome = self._keyword_then_enrich(filters, page, page_size, on_progress, cancel_event)

        if cancel_event is not None and cancel_event.is_set():
            raise SearchCancelled()

        # Random token: identical searches get separate snapshots
        token = self.token_factory()
        if self.snapshots is not None:
            self.snapshots.store(token, filters, outcome.collection)

        if outcome.truncated:
            logger.warning(f"Candidate limit of {self.candidate_limit} reached; total covers scanned candidates only")
        logger.info(f"Search complete: {outcome.total} results, returning {len(outcome.page_items)}")

        return SearchResult(
            items=outcome.page_items,
            total=outcome.total,
            token=token,
            page=page,
            page_size=page_size,
            strategy=outcome.strategy,
            truncated=outcome.truncated,
        )

    # Strategies

    def _direct_advanced_search(self, filters, page, page_size, on_progress, cancel_event) -> _Outcome:
        response = self.api.advanced_search(filters, start_index=(page - 1) * page_size, size=page_size)
        items = deduplicate_companies(company_from_advanced_item(item) for item in response['items'])
        hits = response['hits']
        if hits is None:
            hits = self._probe_hits(filters)

        # The page answers the request; the snapshot needs every hit
        if page == 1 and len(items) >= hits:
            collection, truncated = items, False
        else:
            collection, truncated = self._advanced_candidates(filters, cancel_event)
        return _Outcome(items, hits, collection, Strategy.DIRECT_ADVANCED_SEARCH, truncated)

    def _advanced_then_filter(self, filters, page, page_size, on_progress, cancel_event) -> _Outcome:
        candidates, truncated = self._advanced_candidates(filters, cancel_event)
        matched = filter_by_postcode_prefix(candidates, filters.postcode_prefix)
        logger.info(f"Postcode filter kept {len(matched)}/{len(candidates)} companies")
        return _Outcome(paginate(matched, page, page_size), len(matched), matched,
                        Strategy.ADVANCED_THEN_FILTER, truncated)

    def _keyword_then_enrich(self, filters, page, page_size, on_progress, cancel_event) -> _Outcome:
        if filters.keyword and not needs_company_profile(filters):
            return self._keyword_only(filters.keyword, page, page_size, cancel_event)

        matched, truncated = self._enriched_keyword_candidates(filters, on_progress, cancel_event)
        return _Outcome(paginate(matched, page, page_size), len(matched), matched,
                        Strategy.KEYWORD_THEN_ENRICH, truncated)

    def _keyword_only(self, keyword, page, page_size, cancel_event) -> _Outcome:
        """Nothing to check locally: serve the page straight from keyword search."""
        response = self._search_by_keyword(keyword, page, page_size)
        items = deduplicate_companies(company_from_search_item(item) for item in response.get('items', []))
        total = response.get('total_results', 0)

        if page == 1 and len(items) >= total:
            collection, truncated = items, False
        else:
            collection, truncated = self._keyword_candidates(keyword, cancel_event)
        return _Outcome(items, total, collection, Strategy.KEYWORD_THEN_ENRICH, truncated)

    def _officer_filter(self, filters, page, page_size, on_progress, cancel_event) -> _Outcome:
        base_filters = filters.without_officer_filter()
        try:
            candidates, truncated = self._advanced_candidates(base_filters, cancel_event)
            if base_filters.postcode_prefix:
                candidates = filter_by_postcode_prefix(candidates, base_filters.postcode_prefix)
        except CapabilityUnavailable:
            logger.warning("Advanced search unavailable, collecting officer-filter candidates by keyword")
            # Profile progress is not forwarded; the caller sees only the officer pass
            candidates, truncated = self._enriched_keyword_candidates(base_filters, None, cancel_event)

        logger.info(f"Checking officers for {len(candidates)} candidates")
        matched = self.enrichment.filter_by_officer_birth_year(
            candidates,
            filters.officer_birth_year,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
        return _Outcome(paginate(matched, page, page_size), len(matched), matched,
                        Strategy.OFFICER_FILTER, truncated)

    # Candidate collection

    def _advanced_candidates(
        self,
        filters: SearchFilters,
        cancel_event: Optional[threading.Event] = None
    ) -> Tuple[List[CompanyRecord], bool]:
        """Page through advanced search up to the candidate limit."""
        companies: List[CompanyRecord] = []
        start_index = 0
        hits = 0

        while len(companies) < self.candidate_limit:
            if cancel_event is not None and cancel_event.is_set():
                raise SearchCancelled()

            size = min(self.candidate_page_size, self.candidate_limit - len(companies))
            response = self.api.advanced_search(filters, start_index=start_index, size=size)
            items = response['items']
            if not items:
                break

            companies.extend(company_from_advanced_item(item) for item in items)
            hits = response['hits'] or 0
            start_index += len(items)
            logger.info(f"Advanced search: fetched {start_index}/{hits} candidates")

            if start_index >= hits:
                break
            if self.page_delay > 0:
                time.sleep(self.page_delay)

        truncated = hits > len(companies) and len(companies) >= self.candidate_limit
        return deduplicate_companies(companies), truncated

    def _keyword_candidates(
        self,
        keyword: str,
        cancel_event: Optional[threading.Event] = None
    ) -> Tuple[List[CompanyRecord], bool]:
        """Page through keyword search up to the candidate limit."""
        companies: List[CompanyRecord] = []
        page = 1
        total_results = 0

        while len(companies) < self.candidate_limit:
            if cancel_event is not None and cancel_event.is_set():
                raise SearchCancelled()

            response = self._search_by_keyword(keyword, page, self.keyword_page_size)
            items = response.get('items', [])
            if not items:
                break

            companies.extend(company_from_search_item(item) for item in items)
            total_results = response.get('total_results', 0)
            logger.info(f"Keyword search '{keyword}': fetched {len(companies)}/{total_results} candidates")

            if len(companies) >= total_results:
                break
            page += 1
            if self.page_delay > 0:
                time.sleep(self.page_delay)

        truncated = total_results > len(companies) and len(companies) >= self.candidate_limit
        return deduplicate_companies(companies[:self.candidate_limit]), truncated

    def _enriched_keyword_candidates(
        self,
        filters: SearchFilters,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event]
    ) -> Tuple[List[CompanyRecord], bool]:
        if not filters.keyword:
            raise ValidationError("A keyword is required when advanced search is unavailable")

        candidates, truncated = self._keyword_candidates(filters.keyword, cancel_event)
        if not needs_company_profile(filters):
            return candidates, truncated

        matched = self.enrichment.enrich_profiles(
            candidates,
            filters.without_officer_filter(),
            on_progress=on_progress,
            cancel_event=cancel_event,
        )
        logger.info(f"Profile enrichment kept {len(matched)}/{len(candidates)} companies")
        return matched, truncated

    def _search_by_keyword(self, keyword: str, page: int, page_size: int) -> dict:
        def fetch():
            return self.api.search_by_keyword(keyword, page, page_size)

        if self.cache is None:
            return fetch()
        return self.cache.get_or_fetch(CacheKind.SEARCH, search_cache_key(keyword, page, page_size), fetch)

    def _probe_hits(self, filters: SearchFilters) -> int:
        """Recover the hit count when the requested page was past the end."""
        response = self.api.advanced_search(filters, start_index=0, size=1)
        return response['hits'] or 0
