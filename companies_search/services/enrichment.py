"""
Batched enrichment for filters the upstream search cannot apply:
SIC prefixes and other fields checked against company profiles, and
officer birth years checked against officer lists.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, TypeVar

from companies_search.config import (
    OFFICER_BATCH_SIZE,
    PROFILE_BATCH_SIZE,
    RATE_LIMIT_DELAY,
)
from companies_search.errors import SearchCancelled
from companies_search.models import (
    CompanyRecord,
    SearchFilters,
    company_from_profile,
    officers_from_payload,
)
from companies_search.services.cache import CacheKind, ResultCache, entity_cache_key
from companies_search.services.companies_house import CompaniesHouseAPI
from companies_search.utils.filters import has_officer_born_before, matches_filters

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')

ProgressCallback = Callable[[int, int], None]


class EnrichmentPipeline:
    """
    Runs per-company lookups in fixed-size batches. Lookups within a batch run
    concurrently; batches run one after another with a pause in between.
    """

    def __init__(
        self,
        api: CompaniesHouseAPI,
        cache: Optional[ResultCache] = None,
        batch_delay: float = RATE_LIMIT_DELAY,
        profile_batch_size: int = PROFILE_BATCH_SIZE,
        officer_batch_size: int = OFFICER_BATCH_SIZE
    ):
        self.api = api
        self.cache = cache
        self.batch_delay = batch_delay
        self.profile_batch_size = profile_batch_size
        self.officer_batch_size = officer_batch_size

    def enrich_profiles(
        self,
        companies: Sequence[CompanyRecord],
        filters: SearchFilters,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[CompanyRecord]:
        """
        Replace each candidate with its full profile and keep those matching
        every non-officer filter.
        """
        def evaluate(company: CompanyRecord) -> Optional[CompanyRecord]:
            profile = company_from_profile(self._fetch_profile(company.company_number))
            return profile if matches_filters(profile, filters) else None

        return self.run_batches(
            companies,
            evaluate,
            batch_size=self.profile_batch_size,
            label="profile",
            on_progress=on_progress,
            cancel_event=cancel_event,
        )

    def filter_by_officer_birth_year(
        self,
        companies: Sequence[CompanyRecord],
        birth_year_before: int,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[CompanyRecord]:
        """Keep companies with an active officer born before the given year."""
        def evaluate(company: CompanyRecord) -> Optional[CompanyRecord]:
            officers = officers_from_payload(self._fetch_officers(company.company_number))
            return company if has_officer_born_before(officers, birth_year_before) else None

        return self.run_batches(
            companies,
            evaluate,
            batch_size=self.officer_batch_size,
            label="officer",
            on_progress=on_progress,
            cancel_event=cancel_event,
        )

    def run_batches(
        self,
        candidates: Sequence[T],
        evaluate: Callable[[T], Optional[R]],
        batch_size: int,
        label: str = "enrichment",
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[R]:
        """
        Evaluate candidates batch by batch. evaluate returns the kept value or
        None; a failing evaluation counts as not matching. Output keeps input order.
        Progress is reported as (processed, total) after every batch.
        """
        total = len(candidates)
        matched: List[R] = []
        if total == 0:
            return matched

        with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix=f"{label}-batch") as executor:
            for start in range(0, total, batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(f"{label} pass cancelled after {start}/{total} candidates")
                    raise SearchCancelled()

                if start > 0 and self.batch_delay > 0:
                    time.sleep(self.batch_delay)

                batch = candidates[start:start + batch_size]
                futures = [executor.submit(self._safe_evaluate, evaluate, candidate, label) for candidate in batch]
                # Join point: the whole batch settles before moving on
                results = [future.result() for future in futures]
                matched.extend(result for result in results if result is not None)

                processed = min(start + batch_size, total)
                logger.info(f"{label} pass: processed {processed}/{total}, matched {len(matched)}")
                if on_progress is not None:
                    on_progress(processed, total)

        return matched

    @staticmethod
    def _safe_evaluate(evaluate: Callable[[T], Optional[R]], candidate: T, label: str) -> Optional[R]:
        try:
            return evaluate(candidate)
        except Exception as e:
            number = getattr(candidate, 'company_number', candidate)
            logger.warning(f"{label} lookup failed for {number}: {e}")
            return None

    def _fetch_profile(self, company_number: str):
        if self.cache is None:
            return self.api.get_company_profile(company_number)
        return self.cache.get_or_fetch(
            CacheKind.PROFILE,
            entity_cache_key(CacheKind.PROFILE, company_number),
            lambda: self.api.get_company_profile(company_number),
        )

    def _fetch_officers(self, company_number: str):
        if self.cache is None:
            return self.api.get_company_officers(company_number)
        return self.cache.get_or_fetch(
            CacheKind.OFFICERS,
            entity_cache_key(CacheKind.OFFICERS, company_number),
            lambda: self.api.get_company_officers(company_number),
        )
