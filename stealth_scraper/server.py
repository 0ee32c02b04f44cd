"""FastAPI application factory for the render service.

Routes
------
POST /scrape    Body: {"url": "https://..."}  → rendered HTML
GET  /health    Liveness check

Settings are built once by the caller and stored on ``app.state``; every
request gets its own browser session, capped by a process-wide semaphore.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from loguru import logger

from . import __version__
from .config import ScraperSettings
from .exceptions import ValidationError
from .session import BrowserFactory, camoufox_browser, parse_request, run_scrape

DEGRADED_HEADER = "X-Scrape-Degraded"


async def _read_url(request: Request) -> Optional[Any]:
    """Pull ``url`` out of the JSON body; anything unparseable counts as missing."""
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload.get("url")


def create_app(
    settings: Optional[ScraperSettings] = None,
    browser_factory: BrowserFactory = camoufox_browser,
) -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    settings = settings or ScraperSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            f"Render service ready (max {settings.max_concurrent_sessions} concurrent sessions, "
            f"credentials {'configured' if settings.has_credentials else 'not configured'})"
        )
        yield

    app = FastAPI(
        title="Stealth Scraper",
        description=(
            "Renders a target URL in a stealth headless browser, waiting out "
            "anti-bot challenges and logging in when a login wall appears."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_slots = asyncio.Semaphore(settings.max_concurrent_sessions)
    app.state.browser_factory = browser_factory

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/scrape")
    async def scrape(request: Request):
        """Render the requested URL and return its final HTML."""
        url = await _read_url(request)
        if url is None or (isinstance(url, str) and not url.strip()):
            return JSONResponse(status_code=400, content={"error": "Missing URL"})

        # Validated before queueing, so bad input never waits for a browser slot
        try:
            scrape_request = parse_request(url)
        except ValidationError as e:
            logger.warning(f"Rejected scrape request: {e}")
            return JSONResponse(status_code=400, content={"error": "Invalid URL", "details": str(e)})

        async with request.app.state.session_slots:
            result = await run_scrape(
                scrape_request,
                request.app.state.settings,
                browser_factory=request.app.state.browser_factory,
            )

        if not result.ok:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Scraping failed",
                    "details": result.message,
                    "kind": result.error_kind.value,
                },
            )

        headers = {}
        if result.degraded:
            headers[DEGRADED_HEADER] = "authentication-incomplete"
        return HTMLResponse(content=result.html, status_code=200, headers=headers)

    return app
