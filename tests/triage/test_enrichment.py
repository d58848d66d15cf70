"""Tests for AIEnrichmentOrchestrator: caching, rate limiting and cancellation."""

import asyncio

import pytest

from fakes import NAME_VERDICT, FakeClassifierClient, make_item
from wikitriage.triage.enrichment import AIEnrichmentOrchestrator, RateLimiter, ResponseCache
from wikitriage.triage.exceptions import ClassifierError
from wikitriage.triage.models import ConfidenceTier


async def _until(predicate, rounds: int = 100) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def orchestrator(classifier, settings):
    return AIEnrichmentOrchestrator(classifier, settings.classifier)


class TestResponseCache:
    def test_oldest_entry_evicted(self):
        cache = ResponseCache(capacity=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        assert "a" not in cache
        assert cache.get("c") == 3
        assert len(cache) == 2


class TestRateLimiter:
    def test_concurrent_claims_are_spaced(self):
        limiter = RateLimiter(min_interval=1.0, clock=lambda: 10.0)
        assert [limiter.claim() for _ in range(3)] == [10.0, 11.0, 12.0]

    def test_released_slots_pull_the_watermark_back(self):
        limiter = RateLimiter(min_interval=1.0, clock=lambda: 10.0)
        first, second, third = (limiter.claim() for _ in range(3))
        limiter.dispatch(first)

        limiter.release(third)
        assert limiter.next_allowed == 12.0
        limiter.release(second)
        assert limiter.next_allowed == 11.0
        limiter.release(second)
        assert limiter.next_allowed == 11.0

    def test_advance_never_moves_watermark_back(self):
        now = [10.0]
        limiter = RateLimiter(min_interval=1.0, clock=lambda: now[0])
        limiter.next_allowed = 15.0
        limiter.advance()
        assert limiter.next_allowed == 15.0
        now[0] = 20.0
        limiter.advance()
        assert limiter.next_allowed == 21.0


class TestEnrich:
    @pytest.mark.asyncio
    async def test_result_is_parsed_and_cached(self, orchestrator, classifier):
        item = make_item(1)

        first = await orchestrator.enrich(item)
        second = await orchestrator.enrich(item)

        assert first.has_issues is True
        assert first.confidence is ConfidenceTier.HIGH
        assert second is first
        assert len(classifier.requests) == 1
        assert orchestrator.cached(1) is first

    @pytest.mark.asyncio
    async def test_request_carries_sampling_options(self, orchestrator, classifier):
        await orchestrator.enrich(make_item(1))
        assert classifier.requests[0].options == {"temperature": 0.1, "top_p": 0.9, "num_predict": 1024}
        assert "hasIssues" in classifier.requests[0].schema["properties"]

    @pytest.mark.asyncio
    async def test_disabled_returns_none_without_request(self, classifier, settings):
        disabled = settings.classifier.model_copy(update={"enabled": False})
        orchestrator = AIEnrichmentOrchestrator(classifier, disabled)

        assert await orchestrator.enrich(make_item(1)) is None
        assert classifier.requests == []

    @pytest.mark.asyncio
    async def test_missing_classifier_disables_enrichment(self, settings):
        orchestrator = AIEnrichmentOrchestrator(None, settings.classifier)
        assert orchestrator.edit_analysis_enabled is False
        assert await orchestrator.enrich(make_item(1)) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [
        ClassifierError("model not found"),
        RuntimeError("model not found"),
    ])
    async def test_failure_gives_uncached_degraded_result(self, settings, failure):
        classifier = FakeClassifierClient(failure)
        orchestrator = AIEnrichmentOrchestrator(classifier, settings.classifier)

        result = await orchestrator.enrich(make_item(1))

        assert result.has_issues is False
        assert result.confidence is ConfidenceTier.LOW
        assert result.error == "model not found"
        assert orchestrator.cached(1) is None

        await orchestrator.enrich(make_item(1))
        assert len(classifier.requests) == 2

    @pytest.mark.asyncio
    async def test_empty_response_is_a_failure(self, settings):
        orchestrator = AIEnrichmentOrchestrator(FakeClassifierClient(""), settings.classifier)
        result = await orchestrator.enrich(make_item(1))
        assert "Empty response" in result.error

    @pytest.mark.asyncio
    async def test_unparseable_response_is_sniffed(self, settings):
        orchestrator = AIEnrichmentOrchestrator(
            FakeClassifierClient("This edit looks like vandalism to me"), settings.classifier
        )
        result = await orchestrator.enrich(make_item(1))
        assert result.has_issues is True
        assert result.parse_error


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_without_request_is_noop(self, orchestrator):
        orchestrator.cancel(999)
        orchestrator.cancel_name("Nobody")
        orchestrator.cancel_all()
        assert not orchestrator.in_flight(999)

    @pytest.mark.asyncio
    async def test_cancel_in_flight_returns_none_and_skips_cache(self, orchestrator, classifier):
        classifier.gate = asyncio.Event()
        task = asyncio.create_task(orchestrator.enrich(make_item(1)))
        await _until(lambda: classifier.requests)
        assert orchestrator.in_flight(1)

        orchestrator.cancel(1)

        assert await task is None
        assert orchestrator.cached(1) is None
        assert not orchestrator.in_flight(1)

    @pytest.mark.asyncio
    async def test_new_request_supersedes_old(self, orchestrator, classifier):
        classifier.gate = asyncio.Event()
        item = make_item(1)
        first = asyncio.create_task(orchestrator.enrich(item))
        await _until(lambda: len(classifier.requests) == 1)
        second = asyncio.create_task(orchestrator.enrich(item))
        await _until(lambda: len(classifier.requests) == 2)

        assert await first is None
        classifier.gate.set()
        result = await second

        assert result.has_issues is True
        assert orchestrator.cached(1) is result

    @pytest.mark.asyncio
    async def test_cancel_during_rate_limit_wait_never_calls_classifier(self, classifier, settings):
        sleeps = []

        async def stalled_sleep(delay):
            sleeps.append(delay)
            await asyncio.Event().wait()

        throttled = settings.classifier.model_copy(update={"min_interval_seconds": 5.0})
        orchestrator = AIEnrichmentOrchestrator(classifier, throttled, clock=lambda: 100.0, sleep=stalled_sleep)
        orchestrator.rate_limiter.next_allowed = 103.0

        task = asyncio.create_task(orchestrator.enrich(make_item(7)))
        await _until(lambda: sleeps)
        orchestrator.cancel(7)

        assert await task is None
        assert sleeps == [3.0]
        assert classifier.requests == []

    @pytest.mark.asyncio
    async def test_cancel_all(self, orchestrator, classifier):
        classifier.gate = asyncio.Event()
        tasks = [asyncio.create_task(orchestrator.enrich(make_item(n))) for n in (1, 2)]
        await _until(lambda: len(classifier.requests) == 2)

        orchestrator.cancel_all()

        assert await asyncio.gather(*tasks) == [None, None]
        assert not orchestrator.in_flight(1)
        assert not orchestrator.in_flight(2)

    @pytest.mark.asyncio
    async def test_cancelled_requests_do_not_delay_the_next_one(self, classifier, settings):
        sleeps = []

        async def stalled_sleep(delay):
            sleeps.append(delay)
            await asyncio.Event().wait()

        classifier.gate = asyncio.Event()
        throttled = settings.classifier.model_copy(update={"min_interval_seconds": 1.0})
        orchestrator = AIEnrichmentOrchestrator(classifier, throttled, clock=lambda: 100.0, sleep=stalled_sleep)
        tasks = [asyncio.create_task(orchestrator.enrich(make_item(n))) for n in range(1, 21)]
        await _until(lambda: len(sleeps) == 19 and classifier.requests)

        orchestrator.cancel_all()
        assert await asyncio.gather(*tasks) == [None] * 20

        fresh = asyncio.create_task(orchestrator.enrich(make_item(999)))
        await _until(lambda: len(sleeps) == 20)
        assert sleeps[-1] == 1.0

        orchestrator.cancel(999)
        assert await fresh is None

    @pytest.mark.asyncio
    async def test_cancelling_the_caller_cancels_the_classifier_call(self, orchestrator, classifier):
        classifier.gate = asyncio.Event()
        task = asyncio.create_task(orchestrator.enrich(make_item(1)))
        await _until(lambda: classifier.requests)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await _until(lambda: not [
            pending for pending in asyncio.all_tasks()
            if pending.get_coro().__qualname__ == "FakeClassifierClient.generate"
        ])
        assert not orchestrator.in_flight(1)

    @pytest.mark.asyncio
    async def test_reconfigure_clears_cache_and_switches_endpoint(self, orchestrator, settings):
        await orchestrator.enrich(make_item(1))
        replacement = FakeClassifierClient('{"hasIssues": false, "summary": "Fine"}')

        orchestrator.reconfigure(
            replacement, settings.classifier.model_copy(update={"min_interval_seconds": 2.0})
        )

        assert orchestrator.cached(1) is None
        assert orchestrator.rate_limiter.min_interval == 2.0
        result = await orchestrator.enrich(make_item(1))
        assert result.summary == "Fine"
        assert len(replacement.requests) == 1


class TestClassifyAuthorName:
    @pytest.mark.asyncio
    async def test_verdict_is_cached_per_name(self, settings):
        classifier = FakeClassifierClient(NAME_VERDICT)
        orchestrator = AIEnrichmentOrchestrator(classifier, settings.classifier)

        verdict = await orchestrator.classify_author_name("AcmeCorpPR", "Acme Corporation")
        again = await orchestrator.classify_author_name("AcmeCorpPR", "Other page")

        assert verdict.should_flag is True
        assert again is verdict
        assert len(classifier.requests) == 1
        assert classifier.requests[0].options["num_predict"] == 512

    @pytest.mark.asyncio
    async def test_temporary_accounts_are_not_checked(self, orchestrator, classifier):
        assert await orchestrator.classify_author_name("192.0.2.7", "Moon") is None
        assert await orchestrator.classify_author_name("~2026-1234", "Moon") is None
        assert classifier.requests == []

    @pytest.mark.asyncio
    async def test_disabled_by_toggle(self, classifier, settings):
        toggled = settings.classifier.model_copy(update={"username_analysis": False})
        orchestrator = AIEnrichmentOrchestrator(classifier, toggled)
        assert await orchestrator.classify_author_name("AcmeCorpPR", "Moon") is None

    @pytest.mark.asyncio
    async def test_cancelled_lookup_is_marked(self, orchestrator, classifier):
        classifier.gate = asyncio.Event()
        task = asyncio.create_task(orchestrator.classify_author_name("AcmeCorpPR", "Moon"))
        await _until(lambda: classifier.requests)

        orchestrator.cancel_name("AcmeCorpPR")

        verdict = await task
        assert verdict.cancelled is True
        assert verdict.should_flag is False

    @pytest.mark.asyncio
    async def test_error_verdict(self, settings):
        orchestrator = AIEnrichmentOrchestrator(FakeClassifierClient(ClassifierError("offline")), settings.classifier)
        verdict = await orchestrator.classify_author_name("AcmeCorpPR", "Moon")
        assert verdict.error == "offline"
        assert verdict.should_flag is False
