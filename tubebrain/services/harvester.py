"""
Harvest orchestrator: grows the Markov brain from trending-video comments.

Each cycle lists trending videos, skips the ones already harvested, fetches
a capped number of comments per video while staying under the daily quota,
feeds them into the transition map and persists the result.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from .markov import (
    DEFAULT_MAX_STEPS,
    TransitionMap,
    generate_message,
    update_map,
)
from .storage import CorpusRecord, HarvestedIds, ModelStore, StorageError
from ..utils.logger import log_error, log_info, log_warning

FAILURE_POLICIES = ("skip", "abort")


class HarvestState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    HARVESTING = "harvesting"
    PERSISTING = "persisting"
    ERROR = "error"


class HarvestInProgressError(RuntimeError):
    """run_cycle() was invoked while another cycle is still running."""


class HarvestAbortedError(RuntimeError):
    """A collaborator failed and the cycle stopped early (progress already persisted)."""


class TrendingSource(Protocol):
    async def list_trending(self, credential: str) -> List[str]: ...


class CommentSource(Protocol):
    async def fetch_snippets(self, item_id: str, credential: str, max_count: int) -> List[str]: ...


@dataclass
class HarvestConfig:
    """Quota cost model and harvest limits."""
    chain_length: int = 2
    quota_cost_per_fetch: int = 4
    max_quota_per_day: int = 10000
    comments_per_batch: int = 100
    max_comments_per_video: int = 100
    max_videos_per_update: int = 5
    fetch_timeout: Optional[float] = 30.0
    failure_policy: str = "skip"
    max_generation_steps: int = DEFAULT_MAX_STEPS

    def __post_init__(self):
        if self.failure_policy not in FAILURE_POLICIES:
            raise ValueError(
                f"failure_policy must be one of {FAILURE_POLICIES}, got {self.failure_policy!r}"
            )
        if self.quota_cost_per_fetch <= 0:
            raise ValueError("quota_cost_per_fetch must be positive")
        if self.max_videos_per_update < 0:
            raise ValueError("max_videos_per_update must not be negative")

    @property
    def quota_ceiling(self) -> int:
        """Comments fetchable per day: (daily budget / cost per call) * comments per call."""
        return int(self.max_quota_per_day / self.quota_cost_per_fetch * self.comments_per_batch)

    @classmethod
    def from_settings(cls, settings) -> "HarvestConfig":
        return cls(
            chain_length=settings.CHAIN_LENGTH,
            quota_cost_per_fetch=settings.QUOTA_COST_PER_FETCH,
            max_quota_per_day=settings.MAX_QUOTA_PER_DAY,
            comments_per_batch=settings.COMMENTS_PER_BATCH,
            max_comments_per_video=settings.MAX_COMMENTS_PER_VIDEO,
            max_videos_per_update=settings.MAX_VIDEOS_PER_UPDATE,
            fetch_timeout=settings.FETCH_TIMEOUT_SECONDS or None,
            failure_policy=settings.FETCH_FAILURE_POLICY,
            max_generation_steps=settings.MAX_GENERATION_STEPS,
        )


@dataclass
class CycleReport:
    candidates: int = 0
    harvested: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    snippets_fetched: int = 0
    quota_stopped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HarvestMetrics:
    state: str
    key_count: int
    branching_factor: float
    harvested_count: int
    completed_sequences: int
    map_file_bytes: int
    quota_used_today: int
    quota_ceiling: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def rebuild_from_corpus(store: ModelStore, chain_length: int) -> Tuple[TransitionMap, HarvestedIds]:
    """
    Rebuild the map and harvested ids from the corpus log alone.

    Replaying the same log always yields the same keys and successor multisets.
    """
    tmap = TransitionMap(chain_length)
    ids = HarvestedIds()
    records = 0
    for record in store.iter_corpus():
        update_map("\n".join(record.snippets), tmap, chain_length)
        ids.add(record.item_id)
        records += 1
    log_info("[Harvest] Rebuilt map from corpus log", records=records, keys=len(tmap))
    return tmap, ids


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HarvestOrchestrator:
    """
    Owns the transition map and drives harvest cycles.

    Collaborator calls are awaited one at a time so every fetch is counted
    against the quota before the next one starts.

    Args:
        discovery: Lists trending video ids
        fetcher: Fetches comments for one video
        store: Durable storage for map, ids and corpus log
        credential: API key handed to the collaborators
        config: Quota and harvest limits
        rng: Randomness source for generation
        clock: Returns the current UTC time (quota day boundary)
    """

    def __init__(
        self,
        discovery: TrendingSource,
        fetcher: CommentSource,
        store: ModelStore,
        credential: str,
        config: Optional[HarvestConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.discovery = discovery
        self.fetcher = fetcher
        self.store = store
        self.credential = credential
        self.config = config or HarvestConfig()
        self.rng = rng or random.Random()
        self.clock = clock

        self.state = HarvestState.IDLE
        self.tmap = TransitionMap(self.config.chain_length)
        self.harvested = HarvestedIds()

        self._cycle_running = False
        self._quota_day: date = self.clock().date()
        self._quota_used = 0

    @property
    def cycle_running(self) -> bool:
        return self._cycle_running

    # --- loading ---
    async def initialise(self):
        """
        Load persisted state.

        Missing or corrupt storage falls back to a rebuild from the corpus
        log (re-persisted before returning), then to a fresh empty map.

        Raises:
            HarvestInProgressError: a harvest cycle is running
            StorageError: the rebuilt map could not be persisted
        """
        if self._cycle_running:
            raise HarvestInProgressError("cannot reload state while a harvest cycle is running")
        self.state = HarvestState.LOADING
        k = self.config.chain_length
        try:
            self.tmap, ids = self.store.load(k)
            if ids is None:
                ids = self._ids_from_corpus()
            self.harvested = ids
            log_info(
                f"[Harvest] Map loaded from disk with [{len(self.tmap)}] keys, "
                f"{len(self.harvested)} harvested videos"
            )
        except FileNotFoundError:
            log_info("[Harvest] No persisted map found")
            self._recover()
        except (OSError, ValueError) as e:
            log_warning(f"[Harvest] Unable to load map from storage ({e})")
            self._recover()

        self._restore_quota_usage()
        self.state = HarvestState.IDLE

    def _recover(self):
        k = self.config.chain_length
        if not self.store.has_corpus():
            log_info("[Harvest] No corpus log either, creating fresh map")
            self._reset(k)
            return

        try:
            tmap, ids = rebuild_from_corpus(self.store, k)
        except (OSError, ValueError) as e:
            log_warning("[Harvest] Corpus log unreadable, creating fresh map", error=e)
            self._reset(k)
            return

        self.tmap, self.harvested = tmap, ids
        try:
            self.store.save(self.tmap, self.harvested)
        except StorageError:
            self.state = HarvestState.ERROR
            raise

    def _reset(self, k: int):
        self.tmap = TransitionMap(k)
        self.harvested = HarvestedIds()

    def _ids_from_corpus(self) -> HarvestedIds:
        if not self.store.has_corpus():
            return HarvestedIds()
        try:
            ids = HarvestedIds(record.item_id for record in self.store.iter_corpus())
        except (OSError, ValueError) as e:
            log_warning("[Harvest] Corpus log unreadable, harvested ids not recovered", error=e)
            return HarvestedIds()
        log_info(f"[Harvest] Recovered {len(ids)} harvested ids from corpus log")
        return ids

    def _restore_quota_usage(self):
        """Count comments already fetched today according to the corpus log."""
        self._quota_day = self.clock().date()
        self._quota_used = 0
        if not self.store.has_corpus():
            return
        today = self._quota_day.isoformat()
        used = 0
        try:
            for record in self.store.iter_corpus():
                if record.fetched_at[:10] == today:
                    used += len(record.snippets)
        except (OSError, ValueError) as e:
            log_warning("[Harvest] Corpus log unreadable, quota usage starts at zero", error=e)
            return
        self._quota_used = used

    # --- quota ---
    def quota_used_today(self) -> int:
        today = self.clock().date()
        if today != self._quota_day:
            self._quota_day = today
            self._quota_used = 0
        return self._quota_used

    def _next_fetch_fits(self) -> bool:
        return (
            self.quota_used_today() + self.config.max_comments_per_video
            <= self.config.quota_ceiling
        )

    # --- harvesting ---
    async def run_cycle(self) -> CycleReport:
        """
        Run one harvest cycle and persist the result.

        Raises:
            HarvestInProgressError: another cycle is still running, or state
                is being loaded
            HarvestAbortedError: a collaborator failed (abort policy, or discovery)
            StorageError: persisting the map, ids or corpus log failed
        """
        if self._cycle_running:
            raise HarvestInProgressError("a harvest cycle is already running")
        if self.state == HarvestState.LOADING:
            raise HarvestInProgressError("state is still loading")
        self._cycle_running = True
        try:
            return await self._run_cycle()
        finally:
            self._cycle_running = False

    async def _run_cycle(self) -> CycleReport:
        self.state = HarvestState.HARVESTING
        log_info("[Harvest] Updating map from YouTube")

        try:
            trending = await self._call(self.discovery.list_trending(self.credential))
        except Exception as e:
            log_error(f"[Harvest] Trending discovery failed: {e}")
            self.state = HarvestState.IDLE
            raise HarvestAbortedError("trending discovery failed") from e

        batch = self._select_batch(trending)
        report = CycleReport(candidates=len(batch))
        cap = self.config.max_comments_per_video
        abort_cause: Optional[Exception] = None
        aborted_on: Optional[str] = None
        write_error: Optional[StorageError] = None

        for item_id in batch:
            if not self._next_fetch_fits():
                log_info(
                    f"[Harvest] Quota ceiling reached ({self.quota_used_today()}/"
                    f"{self.config.quota_ceiling}), stopping early"
                )
                report.quota_stopped = True
                break

            log_info("[Harvest] Fetching comments", video=item_id)
            try:
                snippets = await self._call(
                    self.fetcher.fetch_snippets(item_id, self.credential, cap)
                )
            except Exception as e:
                report.failed.append(item_id)
                if self.config.failure_policy == "abort":
                    log_error("[Harvest] Fetch failed, aborting cycle", video=item_id, error=e)
                    abort_cause, aborted_on = e, item_id
                    break
                log_warning("[Harvest] Fetch failed, skipping", video=item_id, error=e)
                continue

            snippets = [str(s) for s in list(snippets)[:cap]]
            self._quota_used += len(snippets)
            report.snippets_fetched += len(snippets)
            log_info("[Harvest] Fetched comments", video=item_id, count=len(snippets))

            try:
                self._ingest(item_id, snippets)
            except StorageError as e:
                log_error(f"[Harvest] Corpus log append failed: {e}")
                write_error = e
                break
            report.harvested.append(item_id)

        log_info(f"[Harvest] Dictionary now contains {len(self.tmap)} keys")
        log_info(f"[Harvest] Dictionary KV ratio is now {self.tmap.branching_factor():.3f}")
        self._persist()

        if write_error is not None:
            self.state = HarvestState.ERROR
            raise write_error
        if abort_cause is not None:
            raise HarvestAbortedError(f"fetch failed for {aborted_on}") from abort_cause
        return report

    def _select_batch(self, trending) -> List[str]:
        batch: List[str] = []
        seen = set()
        for item_id in trending:
            if len(batch) >= self.config.max_videos_per_update:
                break
            if item_id in self.harvested or item_id in seen:
                continue
            seen.add(item_id)
            batch.append(item_id)
        return batch

    def _ingest(self, item_id: str, snippets: List[str]):
        # Log first: the map never holds text the log cannot replay.
        self.store.append_corpus(CorpusRecord(
            item_id=item_id,
            snippets=snippets,
            fetched_at=self.clock().isoformat(),
        ))
        update_map("\n".join(snippets), self.tmap, self.config.chain_length)
        self.harvested.add(item_id)

    def _persist(self):
        self.state = HarvestState.PERSISTING
        try:
            self.store.save(self.tmap, self.harvested)
        except StorageError as e:
            log_error(f"[Harvest] Failed to persist map: {e}")
            self.state = HarvestState.ERROR
            raise
        log_info(f"[Harvest] Saved markov map ({self.store.map_size()} bytes)")
        self.state = HarvestState.IDLE

    async def _call(self, awaitable: Awaitable):
        timeout = self.config.fetch_timeout
        if not timeout:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=timeout)

    # --- reading ---
    def generate_message(self) -> str:
        return generate_message(self.tmap, self.rng, self.config.max_generation_steps)

    def metrics(self) -> HarvestMetrics:
        return HarvestMetrics(
            state=self.state.value,
            key_count=len(self.tmap),
            branching_factor=self.tmap.branching_factor(),
            harvested_count=len(self.harvested),
            completed_sequences=self.tmap.completed_sequences(),
            map_file_bytes=self.store.map_size(),
            quota_used_today=self.quota_used_today(),
            quota_ceiling=self.config.quota_ceiling,
        )
