import asyncio
import logging
import platform
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from shotcrawler.broadcaster import EventBroadcaster, QueueObserver
from shotcrawler.capture import capture_page
from shotcrawler.config import Settings, get_settings
from shotcrawler.crawler import CrawlScheduler
from shotcrawler.engine import EngineFactory, playwright_engine
from shotcrawler.errors import CrawlerError, InvalidSeedUrl
from shotcrawler.image_utils import to_data_uri
from shotcrawler.sse_utils import sse_event
from shotcrawler.urls import parse_seed

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class CrawlRequest(BaseModel):
    url: str | None = None


def _require_url(request: CrawlRequest) -> str:
    url = (request.url or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")
    return url


def create_app(settings: Settings | None = None, engine_factory: EngineFactory | None = None) -> FastAPI:
    settings = settings or get_settings()
    engine_factory = engine_factory or playwright_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Shutdown: let running crawls release their browsers
        for scheduler in list(app.state.crawls):
            try:
                await asyncio.wait_for(scheduler.wait_completed(), timeout=5)
            except asyncio.TimeoutError:
                logger.warning("[server] Crawl of %s still running at shutdown", scheduler.base_url)

    app = FastAPI(title="Screenshot Crawler", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine_factory = engine_factory
    app.state.broadcaster = EventBroadcaster()
    app.state.crawls = set()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/")
    def root():
        return {"message": "Crawler service is running"}

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": {
                "python": sys.version.split()[0],
                "platform": sys.platform,
                "arch": platform.machine(),
            },
        }

    @app.get("/events")
    async def events(request: Request):
        """Live crawl progress as Server-Sent Events."""
        broadcaster: EventBroadcaster = request.app.state.broadcaster
        observer = QueueObserver(maxsize=settings.subscriber_queue_size)
        observer.write(sse_event("info", "Connected to SSE"))
        broadcaster.subscribe(observer)
        logger.info("[server] SSE client connected (%d total)", broadcaster.subscriber_count)

        async def event_stream():
            try:
                async for message in observer.stream():
                    yield message
            finally:
                broadcaster.unsubscribe(observer)
                observer.close()
                logger.info("[server] SSE client disconnected (%d left)", broadcaster.subscriber_count)

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.post("/start-crawl")
    async def start_crawl(request: CrawlRequest, http_request: Request):
        """
        Start a crawl. Progress, including a bad seed URL, goes to /events.

        Every crawl reports to the app's one broadcaster, so concurrent crawls
        interleave on the same stream and clients tell them apart by URL.
        """
        url = _require_url(request)
        state = http_request.app.state

        logger.info("[server] Starting crawl for URL: %s", url)
        scheduler = CrawlScheduler(
            state.broadcaster,
            engine_factory=state.engine_factory,
            settings=settings,
        )
        await scheduler.start_crawling(url)

        # Hold a reference until the run finishes
        state.crawls.add(scheduler)
        waiter = asyncio.create_task(scheduler.wait_completed())
        waiter.add_done_callback(lambda _: state.crawls.discard(scheduler))

        return {"message": "Crawling started"}

    @app.post("/screenshot")
    async def screenshot(request: CrawlRequest, http_request: Request):
        """Capture a single page without crawling."""
        url = _require_url(request)
        try:
            url, _ = parse_seed(url)
        except InvalidSeedUrl as e:
            raise HTTPException(status_code=400, detail=str(e))

        engine = http_request.app.state.engine_factory(settings)
        try:
            await engine.start()
            result = await capture_page(engine, url, settings)
        except CrawlerError as e:
            logger.warning("[server] Screenshot of %s failed: %s", url, e)
            raise HTTPException(status_code=500, detail=str(e))
        except Exception as e:
            logger.exception("[server] Screenshot of %s failed", url)
            raise HTTPException(status_code=500, detail=str(e) or "Unknown error occurred")
        finally:
            await engine.close()

        return {
            "message": "Screenshot captured",
            "url": url,
            "screenshot": to_data_uri(result.image),
        }

    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
