"""Asynchronous AI enrichment of work items.

Every scoring request goes through the same discipline:

1. Answer from the response cache when possible.
2. Supersede any request already in flight for the same key.
3. Wait for the shared rate-limit watermark, giving up if cancelled.
4. Race the classifier call against the request's cancellation token.
5. Cache and return the parsed verdict, or a degraded result on failure.

Cancellation is cooperative: a ``CancellationToken`` per key is stored in
a registry so the triage queue can abort work for items the operator has
moved past.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from .exceptions import ClassifierError
from .models import EnrichmentResult, NameVerdict, ScoringRequest, WorkItem
from .prompts import edit_scoring_request, is_temporary_account, name_scoring_request
from .response_parsing import describe_raw, parse_edit_response, parse_name_response

if TYPE_CHECKING:
    from ..clients.base import ClassifierClient
    from ..configuration.settings import ClassifierSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

EDIT_NAMESPACE = "edit"
USERNAME_NAMESPACE = "username"


class CancellationToken:
    """One-shot cancellation signal for a single request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.slot: Optional[float] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class ResponseCache(Generic[T]):
    """Insertion-ordered cache that evicts its oldest entry past capacity."""

    def __init__(self, capacity: int = 100) -> None:
        self.capacity = capacity
        self._entries: "OrderedDict[str, T]" = OrderedDict()

    def get(self, key: str) -> Optional[T]:
        return self._entries.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, key: str, value: T) -> None:
        self._entries[key] = value
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


@dataclass
class RateLimiter:
    """Single shared watermark: the earliest time the next request may start.

    Slots are claimed synchronously, so concurrent callers are spaced
    ``min_interval`` apart even when they all arrive at once. A slot given
    back before dispatch no longer holds back the callers behind it.
    """

    min_interval: float = 1.0
    clock: Callable[[], float] = time.monotonic
    next_allowed: float = field(default=0.0)
    _pending: List[float] = field(default_factory=list, repr=False)
    _floor: float = field(default=0.0, repr=False)

    def claim(self) -> float:
        """Claim the next slot and return its start time."""
        slot = max(self.clock(), self.next_allowed)
        self.next_allowed = slot + self.min_interval
        self._pending.append(slot)
        return slot

    def dispatch(self, slot: float) -> None:
        """Mark a claimed slot as used by a request that is now being sent."""
        if slot in self._pending:
            self._pending.remove(slot)
        self._floor = max(self._floor, slot + self.min_interval)

    def release(self, slot: float) -> None:
        """Give back a slot whose request was abandoned before dispatch."""
        if slot not in self._pending:
            return
        self._pending.remove(slot)
        tail = max(self._pending) + self.min_interval if self._pending else self._floor
        self.next_allowed = max(self._floor, tail)

    def advance(self) -> None:
        """Push the watermark out after a completed request."""
        self._floor = max(self._floor, self.clock() + self.min_interval)
        self.next_allowed = max(self.next_allowed, self._floor)


class AIEnrichmentOrchestrator:
    """Issues classifier requests for work items without blocking ingestion.

    Example:
        orchestrator = AIEnrichmentOrchestrator(classifier, settings.classifier)
        result = await orchestrator.enrich(item)
        if result is not None and result.has_issues:
            ...
    """

    def __init__(
        self,
        classifier: Optional["ClassifierClient"],
        settings: "ClassifierSettings",
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._classifier = classifier
        self._settings = settings
        self._sleep = sleep
        self._edit_cache: ResponseCache[EnrichmentResult] = ResponseCache(settings.cache_size)
        self._name_cache: ResponseCache[NameVerdict] = ResponseCache(settings.cache_size)
        self._rate_limiter = RateLimiter(min_interval=settings.min_interval_seconds, clock=clock)
        self._tokens: Dict[str, CancellationToken] = {}

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def edit_analysis_enabled(self) -> bool:
        return bool(self._settings.enabled and self._settings.edit_analysis and self._classifier is not None)

    @property
    def username_analysis_enabled(self) -> bool:
        return bool(self._settings.enabled and self._settings.username_analysis and self._classifier is not None)

    def in_flight(self, revision_id: int) -> bool:
        return _key(EDIT_NAMESPACE, revision_id) in self._tokens

    def cached(self, revision_id: int) -> Optional[EnrichmentResult]:
        return self._edit_cache.get(str(revision_id))

    async def enrich(self, item: WorkItem) -> Optional[EnrichmentResult]:
        """Score one work item.

        Returns None when disabled or cancelled; a degraded result when the
        classifier fails. Never raises for classifier problems.
        """
        if not self.edit_analysis_enabled:
            return None

        cache_key = str(item.revision_id)
        cached = self._edit_cache.get(cache_key)
        if cached is not None:
            return cached

        options = {
            "temperature": self._settings.temperature,
            "top_p": self._settings.top_p,
            "num_predict": self._settings.num_predict,
        }
        return await self._run(
            namespace=EDIT_NAMESPACE,
            key=cache_key,
            label=f"revision {item.revision_id}",
            build_request=lambda: edit_scoring_request(item, options),
            parse=parse_edit_response,
            cache=self._edit_cache,
            on_error=lambda exc: EnrichmentResult.degraded(str(exc)),
            on_cancel=lambda: None,
        )

    async def classify_author_name(self, name: str, page_context: str) -> Optional[NameVerdict]:
        """Ask whether ``name`` breaks the username policy.

        Temporary and anonymous accounts are not checked. A lookup cancelled
        mid-flight yields a verdict with ``cancelled=True``.
        """
        if not self.username_analysis_enabled or is_temporary_account(name):
            return None

        cached = self._name_cache.get(name)
        if cached is not None:
            return cached

        options = {
            "temperature": self._settings.temperature,
            "top_p": self._settings.top_p,
            "num_predict": self._settings.name_num_predict,
        }
        return await self._run(
            namespace=USERNAME_NAMESPACE,
            key=name,
            label=f"username {name!r}",
            build_request=lambda: name_scoring_request(name, page_context, options),
            parse=parse_name_response,
            cache=self._name_cache,
            on_error=lambda exc: NameVerdict(
                reasoning=f"Error analyzing username: {exc}",
                recommendation="Manual review recommended due to analysis error",
                error=str(exc),
            ),
            on_cancel=lambda: NameVerdict(reasoning="Analysis cancelled", cancelled=True),
        )

    def cancel(self, revision_id: int) -> None:
        """Abort the in-flight request for one revision; no-op if none."""
        token = self._tokens.pop(_key(EDIT_NAMESPACE, revision_id), None)
        if token is not None:
            self._abort(token)
            logger.debug(f"Cancelled enrichment for revision {revision_id}")

    def cancel_name(self, name: str) -> None:
        token = self._tokens.pop(_key(USERNAME_NAMESPACE, name), None)
        if token is not None:
            self._abort(token)

    def cancel_all(self) -> None:
        if self._tokens:
            logger.debug(f"Cancelling {len(self._tokens)} in-flight classifier requests")
        for token in self._tokens.values():
            self._abort(token)
        self._tokens.clear()

    def _abort(self, token: CancellationToken) -> None:
        token.cancel()
        if token.slot is not None:
            self._rate_limiter.release(token.slot)
            token.slot = None

    def clear_cache(self) -> None:
        self._edit_cache.clear()
        self._name_cache.clear()

    def reconfigure(
        self,
        classifier: Optional["ClassifierClient"],
        settings: Optional["ClassifierSettings"] = None,
    ) -> None:
        """Swap the classifier endpoint; everything in flight is cancelled."""
        self.cancel_all()
        self.clear_cache()
        self._classifier = classifier
        if settings is not None:
            self._settings = settings
            self._rate_limiter.min_interval = settings.min_interval_seconds
            self._edit_cache.capacity = settings.cache_size
            self._name_cache.capacity = settings.cache_size
        logger.info("Classifier reconfigured")

    async def _run(
        self,
        *,
        namespace: str,
        key: str,
        label: str,
        build_request: Callable[[], ScoringRequest],
        parse: Callable[[str], T],
        cache: ResponseCache[T],
        on_error: Callable[[Exception], T],
        on_cancel: Callable[[], Optional[T]],
    ) -> Optional[T]:
        token_key = _key(namespace, key)
        previous = self._tokens.pop(token_key, None)
        if previous is not None:
            self._abort(previous)
            logger.debug(f"Superseded in-flight request for {label}")

        token = CancellationToken()
        self._tokens[token_key] = token
        try:
            token.slot = self._rate_limiter.claim()
            delay = token.slot - self._rate_limiter.clock()
            if delay > 0 and await self._wait_or_cancel(delay, token):
                return on_cancel()
            if token.cancelled:
                return on_cancel()

            self._rate_limiter.dispatch(token.slot)
            token.slot = None
            raw = await self._send(build_request(), token)
            if raw is None or token.cancelled:
                logger.debug(f"Classifier request for {label} cancelled")
                return on_cancel()

            result = parse(raw)
            cache.put(key, result)
            self._rate_limiter.advance()
            return result
        except ClassifierError as exc:
            logger.warning(f"Classifier request for {label} failed: {exc}")
            return on_error(exc)
        except Exception as exc:
            logger.error(f"Unexpected classifier failure for {label}", exc_info=True)
            return on_error(exc)
        finally:
            if token.slot is not None:
                self._rate_limiter.release(token.slot)
                token.slot = None
            if self._tokens.get(token_key) is token:
                del self._tokens[token_key]

    async def _wait_or_cancel(self, delay: float, token: CancellationToken) -> bool:
        """Sleep for ``delay`` seconds; return True if cancelled meanwhile."""
        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        return token.cancelled

    async def _send(self, request: ScoringRequest, token: CancellationToken) -> Optional[str]:
        if self._classifier is None:
            raise ClassifierError("No classifier configured")

        call = asyncio.ensure_future(self._classifier.generate(request))
        waiter = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            # The caller is going away; take the classifier call with it.
            call.cancel()
            raise
        finally:
            waiter.cancel()

        if not call.done():
            call.cancel()
            try:
                await call
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.debug(f"Cancelled classifier call ended with {exc!r}")
            return None

        raw = call.result()
        if not raw:
            raise ClassifierError("Empty response from classifier")
        logger.debug(f"Classifier answered: {describe_raw(raw)}")
        return raw


def _key(namespace: str, key: Any) -> str:
    return f"{namespace}:{key}"


__all__ = [
    "AIEnrichmentOrchestrator",
    "CancellationToken",
    "RateLimiter",
    "ResponseCache",
]
