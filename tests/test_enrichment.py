"""
Tests for the batched enrichment pipeline
"""
import threading
import time
from unittest.mock import patch, call

import pytest

from companies_search.errors import SearchCancelled
from companies_search.models import CompanyRecord, SearchFilters
from companies_search.services.enrichment import EnrichmentPipeline

from conftest import FakeCompaniesHouse, officer, profile


def _companies(count):
    return [CompanyRecord(company_number=f"{i:08d}") for i in range(1, count + 1)]


class TestRunBatches:
    def test_preserves_input_order(self):
        pipeline = EnrichmentPipeline(FakeCompaniesHouse(), batch_delay=0)

        def evaluate(n):
            # Later items finish first inside each batch
            time.sleep(0.001 * (10 - n % 10))
            return n if n % 2 == 0 else None

        result = pipeline.run_batches(list(range(25)), evaluate, batch_size=10)
        assert result == list(range(0, 25, 2))

    def test_concurrency_bounded_by_batch_size(self):
        pipeline = EnrichmentPipeline(FakeCompaniesHouse(), batch_delay=0)
        lock = threading.Lock()
        state = {"in_flight": 0, "peak": 0}

        def evaluate(n):
            with lock:
                state["in_flight"] += 1
                state["peak"] = max(state["peak"], state["in_flight"])
            time.sleep(0.01)
            with lock:
                state["in_flight"] -= 1
            return n

        pipeline.run_batches(list(range(23)), evaluate, batch_size=5)
        assert state["peak"] <= 5

    def test_progress_after_each_batch(self):
        pipeline = EnrichmentPipeline(FakeCompaniesHouse(), batch_delay=0)
        progress = []

        pipeline.run_batches(list(range(23)), lambda n: n, batch_size=10,
                             on_progress=lambda current, total: progress.append((current, total)))

        assert progress == [(10, 23), (20, 23), (23, 23)]

    def test_no_progress_for_empty_input(self):
        pipeline = EnrichmentPipeline(FakeCompaniesHouse(), batch_delay=0)
        progress = []

        result = pipeline.run_batches([], lambda n: n, batch_size=10,
                                      on_progress=lambda current, total: progress.append((current, total)))

        assert result == []
        assert progress == []

    def test_failures_count_as_non_matching(self):
        pipeline = EnrichmentPipeline(FakeCompaniesHouse(), batch_delay=0)

        def evaluate(n):
            if n == 3:
                raise RuntimeError("lookup failed")
            return n

        assert pipeline.run_batches(list(range(6)), evaluate, batch_size=2) == [0, 1, 2, 4, 5]

    @patch("companies_search.services.enrichment.time.sleep")
    def test_pauses_between_batches_only(self, mock_sleep):
        pipeline = EnrichmentPipeline(FakeCompaniesHouse(), batch_delay=0.2)

        pipeline.run_batches(list(range(25)), lambda n: n, batch_size=10)

        assert mock_sleep.call_args_list == [call(0.2), call(0.2)]

    def test_cancel_before_next_batch(self):
        pipeline = EnrichmentPipeline(FakeCompaniesHouse(), batch_delay=0)
        cancel_event = threading.Event()
        seen = []

        def evaluate(n):
            seen.append(n)
            return n

        with pytest.raises(SearchCancelled):
            pipeline.run_batches(list(range(30)), evaluate, batch_size=10,
                                 on_progress=lambda current, total: cancel_event.set(),
                                 cancel_event=cancel_event)

        assert sorted(seen) == list(range(10))


class TestOfficerPass:
    def test_matches_active_officer_born_before(self):
        api = FakeCompaniesHouse(officers={
            "00000001": [officer("A", 1945)],
            "00000002": [officer("B", 1945, resigned_on="2020-01-01"), officer("C", 1980)],
            "00000003": [officer("D", 1950)],
        })
        pipeline = EnrichmentPipeline(api, batch_delay=0)

        result = pipeline.filter_by_officer_birth_year(_companies(3), 1950)

        assert [c.company_number for c in result] == ["00000001"]


class TestProfilePass:
    def test_replaces_candidates_with_profiles(self):
        api = FakeCompaniesHouse(profiles={
            "00000001": profile("00000001", ["62010"]),
            "00000002": profile("00000002", ["47110"]),
        })
        pipeline = EnrichmentPipeline(api, batch_delay=0)

        result = pipeline.enrich_profiles(_companies(2), SearchFilters(sic=["62"]))

        assert len(result) == 1
        assert result[0].sic_codes == ("62010",)
        assert result[0].company_name == "COMPANY 00000001 LTD"
