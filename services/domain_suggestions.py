"""
Domain suggestion service for the order flow

Turns a free-text query into a short list of candidate domains, checks each
candidate concurrently and merges the results into one status list. Partial
failures are tolerated; an error is surfaced only when every check failed.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from monitoring.production_logging import log_performance_metric
from utils.debounce import DebouncedTask

logger = logging.getLogger(__name__)

# Suffix preference list; the user's own TLD is never used
FAVORITE_TLDS = (".com", ".id", ".co.id")
MAX_CANDIDATES = 10

ALL_FAILED_FALLBACK_MESSAGE = "Gagal cek domain"
CANDIDATE_FAILED_MESSAGE = "Failed"
BATCH_FAILED_MESSAGE = "Failed to fetch domain suggestions"

_PROTOCOL_RE = re.compile(r"^https?://")
_WHITESPACE_RE = re.compile(r"\s+")

AvailabilityLookup = Callable[[str], Awaitable[Dict[str, Any]]]


def normalize_keyword(raw: Optional[str]) -> str:
    """
    Canonicalize a domain query into a bare keyword

    'https://Acme Shop.co.id/' -> 'acmeshop'. Empty input yields '' (no query).
    """
    value = str(raw if raw is not None else "")
    # Repeat until stable so normalize_keyword(normalize_keyword(q)) == normalize_keyword(q)
    while True:
        normalized = _normalize_once(value)
        if normalized == value:
            return normalized
        value = normalized


def _normalize_once(value: str) -> str:
    value = value.strip().lower()
    value = _PROTOCOL_RE.sub("", value)
    if value.endswith("/"):
        value = value[:-1]
    value = _WHITESPACE_RE.sub("", value)
    if not value:
        return ""
    return value.split(".")[0] if "." in value else value


def build_candidates(keyword: Optional[str]) -> List[str]:
    """Expand a keyword into keyword+suffix for each preferred suffix"""
    k = normalize_keyword(keyword)
    if not k:
        return []
    return [f"{k}{tld}" for tld in FAVORITE_TLDS][:MAX_CANDIDATES]


def map_status(raw_status: Any) -> str:
    status = str(raw_status if raw_status is not None else "unknown").lower()
    if status in ("available", "unavailable"):
        return status
    return "unknown"


@dataclass(frozen=True)
class DomainSuggestionItem:
    domain: str
    status: str
    price_usd: Optional[float] = None
    currency: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'domain': self.domain,
            'status': self.status,
            'price_usd': self.price_usd,
            'currency': self.currency,
        }


@dataclass(frozen=True)
class CandidateResult:
    """Outcome of one candidate check; status 'error' marks a captured failure"""
    domain: str
    status: str
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == "error"


@dataclass(frozen=True)
class SuggestionState:
    loading: bool = False
    error: Optional[str] = None
    items: List[DomainSuggestionItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'loading': self.loading,
            'error': self.error,
            'items': [item.to_dict() for item in self.items],
        }


IDLE_STATE = SuggestionState()


def merge_results(results: Sequence[CandidateResult]) -> SuggestionState:
    """
    Merge settled candidate results

    Failed candidates are dropped. If every candidate failed, the first
    failure in submission order becomes the error.
    """
    items = [
        DomainSuggestionItem(domain=r.domain, status=map_status(r.status))
        for r in results
        if not r.failed
    ]

    all_failed = all(r.failed for r in results)
    error = None
    if all_failed:
        first_error = next((r for r in results if r.failed), None)
        error = (first_error.error if first_error else None) or ALL_FAILED_FALLBACK_MESSAGE

    return SuggestionState(loading=False, error=error, items=items)


class DomainSuggestionService:
    """
    Debounced, concurrent availability aggregation

    request(query) is the debounced entry point (one call per keystroke);
    suggest(query) runs a single batch immediately.
    """

    def __init__(
        self,
        lookup: AvailabilityLookup,
        debounce_ms: Optional[int] = None,
        enabled: bool = True,
    ):
        if debounce_ms is None:
            from config import get_config
            debounce_ms = get_config().checkout.domain_suggestion_debounce_ms

        self.lookup = lookup
        self.enabled = enabled
        self._debounce = DebouncedTask(debounce_ms / 1000.0, name="domain_suggestions")
        self._state = IDLE_STATE
        self._listeners: List[Callable[[SuggestionState], None]] = []

    @property
    def state(self) -> SuggestionState:
        return self._state

    def subscribe(self, listener: Callable[[SuggestionState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def request(self, query: Optional[str]) -> Optional[int]:
        """
        Debounced query entry point

        Returns:
            The debounce generation scheduled, or None when nothing was scheduled
        """
        if not self.enabled:
            return None

        keyword = normalize_keyword(query)
        if not keyword:
            self._debounce.supersede()
            self._set_state(IDLE_STATE)
            return None

        async def _run(generation: int) -> None:
            await self._run_batch(keyword, generation)

        return self._debounce.schedule(_run)

    async def wait_idle(self) -> None:
        await self._debounce.wait_idle()

    def close(self) -> None:
        self._debounce.cancel()

    async def suggest(self, query: Optional[str]) -> SuggestionState:
        """Run one batch immediately, without debounce or shared state"""
        candidates = build_candidates(query)
        if not candidates:
            return IDLE_STATE
        try:
            results = await self.check_candidates(candidates)
        except Exception as e:
            logger.error(f"❌ Domain suggestion batch failed: {e}")
            return SuggestionState(loading=False, error=str(e) or BATCH_FAILED_MESSAGE, items=[])
        return merge_results(results)

    async def check_candidates(self, candidates: Sequence[str]) -> List[CandidateResult]:
        """Check all candidates concurrently; per-candidate failures are captured, not raised"""
        start_time = time.time()
        results = await asyncio.gather(*(self._check_one(domain) for domain in candidates))
        duration_ms = (time.time() - start_time) * 1000
        failures = sum(1 for r in results if r.failed)
        logger.info(f"🔍 DOMAIN_SUGGESTIONS: checked {len(candidates)} candidates in {duration_ms:.0f}ms ({failures} failed)")
        log_performance_metric("domain_suggestions", "availability_batch", duration_ms, success=failures < len(results))
        return list(results)

    async def _check_one(self, domain: str) -> CandidateResult:
        try:
            data = await self.lookup(domain)
            status = (data or {}).get('status')
            return CandidateResult(domain=domain, status=str(status if status is not None else "unknown").lower())
        except Exception as e:
            message = str(e) or CANDIDATE_FAILED_MESSAGE
            logger.warning(f"⚠️ Availability check failed for {domain}: {message}")
            return CandidateResult(domain=domain, status="error", error=message)

    async def _run_batch(self, keyword: str, generation: int) -> None:
        candidates = build_candidates(keyword)
        if not candidates:
            self._write(generation, IDLE_STATE)
            return

        self._write(generation, SuggestionState(loading=True, error=None, items=self._state.items))

        try:
            results = await self.check_candidates(candidates)
            next_state = merge_results(results)
        except Exception as e:
            logger.error(f"❌ Domain suggestion batch failed: {e}")
            next_state = SuggestionState(loading=False, error=str(e) or BATCH_FAILED_MESSAGE, items=[])

        self._write(generation, next_state)

    def _write(self, generation: int, state: SuggestionState) -> None:
        if not self._debounce.is_current(generation):
            logger.debug(f"Discarding suggestion state from stale generation {generation}")
            return
        self._set_state(state)

    def _set_state(self, state: SuggestionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"❌ Suggestion listener failed: {e}")
