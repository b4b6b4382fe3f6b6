"""
Breadth-first crawl scheduler.

The frontier is a FIFO of (url, depth). Up to ``max_concurrent`` captures run
at once, but never across a depth boundary: an entry deeper than the
current depth marker waits at the head of the queue until every in-flight
capture has finished. Within one depth, pages finish in any order.

All bookkeeping happens in ``_pump`` and in the ``finally`` of each task.
Both run on the event loop between awaits, so frontier, visited set and
counters need no lock.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Set

from shotcrawler.broadcaster import EventBroadcaster
from shotcrawler.capture import capture_page
from shotcrawler.config import Settings, get_settings
from shotcrawler.engine import EngineFactory, RenderingEngine, playwright_engine
from shotcrawler.errors import CrawlerError, InvalidSeedUrl
from shotcrawler.image_utils import to_data_uri
from shotcrawler.urls import is_admissible, normalize_url, parse_seed

logger = logging.getLogger(__name__)


class CrawlState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class FrontierEntry:
    url: str
    depth: int


class CrawlScheduler:
    """Runs one crawl at a time and reports progress through a broadcaster."""

    def __init__(
        self,
        broadcaster: EventBroadcaster,
        engine_factory: Optional[EngineFactory] = None,
        settings: Optional[Settings] = None,
    ):
        self.broadcaster = broadcaster
        self.settings = settings or get_settings()
        self._engine_factory = engine_factory or playwright_engine
        self._engine: Optional[RenderingEngine] = None
        self._reset("", "")

    def _reset(self, base_url: str, domain: str) -> None:
        self.base_url = base_url
        self.domain = domain
        self._frontier: Deque[FrontierEntry] = deque()
        self._visited: Set[str] = set()
        self._in_flight: Set[str] = set()
        self._urls_by_depth: Dict[int, List[str]] = {}
        self._current_depth = 0
        self._active = 0
        self._tasks: Set[asyncio.Task] = set()
        self._state = CrawlState.IDLE
        self._completed = asyncio.Event()

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    @property
    def state(self) -> CrawlState:
        return self._state

    @property
    def visited(self) -> frozenset[str]:
        return frozenset(self._visited)

    @property
    def urls_by_depth(self) -> Dict[int, List[str]]:
        return {depth: list(urls) for depth, urls in self._urls_by_depth.items()}

    @property
    def current_depth(self) -> int:
        return self._current_depth

    @property
    def active_count(self) -> int:
        return self._active

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------
    async def start_crawling(self, seed_url: str) -> None:
        """
        Validate the seed, launch the browser and dispatch the first page.

        Returns as soon as the crawl is under way; use ``wait_completed``
        to wait for the end. An invalid seed or a browser that won't start
        ends the run here with a single ``error`` event.
        """
        if self._state in (CrawlState.RUNNING, CrawlState.DRAINING):
            raise RuntimeError("A crawl is already running on this scheduler")

        try:
            seed, domain = parse_seed(seed_url)
        except InvalidSeedUrl as e:
            self._reset("", "")
            logger.warning("[crawler] %s", e)
            self.broadcaster.broadcast("error", f"Invalid URL: {e}")
            await self._teardown()
            return

        self._reset(seed, domain)
        self._state = CrawlState.RUNNING

        try:
            self._engine = self._engine_factory(self.settings)
            await self._engine.start()
        except Exception as e:
            logger.exception("[crawler] Failed to start browser")
            self.broadcaster.broadcast("error", f"Failed to start browser: {e}")
            await self._teardown()
            return

        logger.info("[crawler] Starting crawl of %s (domain %s)", seed, domain)
        self._visited.add(seed)
        self._frontier.append(FrontierEntry(seed, 0))
        self._pump()

    async def wait_completed(self) -> None:
        await self._completed.wait()

    async def run(self, seed_url: str) -> None:
        """Crawl ``seed_url`` to completion."""
        await self.start_crawling(seed_url)
        await self.wait_completed()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def _cap_reached(self) -> bool:
        return len(self._visited) >= self.settings.max_pages

    def _pump(self) -> None:
        """Dispatch whatever the depth barrier and concurrency limit allow."""
        if self._state not in (CrawlState.RUNNING, CrawlState.DRAINING):
            return

        while self._frontier and self._active < self.settings.max_concurrent:
            entry = self._frontier.popleft()
            if entry.url in self._in_flight:
                continue

            if entry.depth > self._current_depth:
                if self._active:
                    # Barrier: this depth still has pages in flight
                    self._frontier.appendleft(entry)
                    break
                self._current_depth = entry.depth
                logger.info("[crawler] Processing depth %d", entry.depth)
                self.broadcaster.broadcast("info", f"Processing depth {entry.depth}")

            self._dispatch(entry)

        if not self._frontier and self._active == 0:
            self._finish()
        elif self._cap_reached() or not self._frontier:
            self._state = CrawlState.DRAINING
        else:
            # Links found by a finishing page refill the frontier
            self._state = CrawlState.RUNNING

    def _dispatch(self, entry: FrontierEntry) -> None:
        self._in_flight.add(entry.url)
        self._active += 1
        task = asyncio.create_task(self._process(entry))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self, entry: FrontierEntry) -> None:
        url, depth = entry.url, entry.depth
        try:
            self.broadcaster.broadcast("info", f"Crawling: {url}")
            result = await capture_page(self._engine, url, self.settings)

            self.broadcaster.broadcast("screenshot", {"url": url, "data": to_data_uri(result.image)})

            self._urls_by_depth.setdefault(depth, []).append(url)
            self.broadcaster.broadcast("depth", {"depth": depth, "url": url})

            self._discover(result.links, result.base_url, depth + 1)
        except CrawlerError as e:
            logger.warning("[crawler] Error processing %s: %s", url, e)
            self.broadcaster.broadcast("error", f"Error processing {url}: {e}")
        except Exception as e:
            logger.exception("[crawler] Unexpected failure processing %s", url)
            self.broadcaster.broadcast("error", f"Error processing {url}: {str(e) or 'Unknown error'}")
        finally:
            self._in_flight.discard(url)
            self._active -= 1
            self._pump()

    def _discover(self, links: List[str], base_url: str, depth: int) -> None:
        for link in links:
            if self._cap_reached():
                return
            normalized = normalize_url(link, base_url)
            if not normalized or normalized in self._visited:
                continue
            if not is_admissible(normalized, self.domain):
                continue

            self._visited.add(normalized)
            self._frontier.append(FrontierEntry(normalized, depth))
            self.broadcaster.broadcast("link", {
                "url": normalized,
                "depth": depth,
                "total": len(self._visited),
            })

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------
    def _finish(self) -> None:
        if self._cap_reached():
            message = "Crawling completed (reached maximum page limit)"
        else:
            message = "Crawling completed"
        logger.info("[crawler] %s: %d pages", message, len(self._visited))
        self.broadcaster.broadcast("info", message)

        # Stop _pump from re-entering while the browser shuts down
        self._state = CrawlState.COMPLETED
        task = asyncio.create_task(self._teardown())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _teardown(self) -> None:
        engine, self._engine = self._engine, None
        try:
            if engine is not None:
                await engine.close()
        except Exception as e:
            logger.warning("[crawler] Error during browser cleanup: %s", e)
        finally:
            self._state = CrawlState.COMPLETED
            self._completed.set()
