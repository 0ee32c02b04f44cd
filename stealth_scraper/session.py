"""Session driver: one browser, one page, one request"""

import time
import uuid
from typing import AsyncContextManager, Callable, Optional
from urllib.parse import urlparse

from loguru import logger

from .config import ScraperSettings
from .diagnostics import capture_failure
from .exceptions import ScraperError, UnexpectedFailure, ValidationError
from .models import ScrapeRequest, ScrapeResult
from .resolver import ChallengeLoginResolver, navigate

BrowserFactory = Callable[[ScraperSettings], AsyncContextManager]


def camoufox_browser(settings: ScraperSettings) -> AsyncContextManager:
    """
    Build a Camoufox launcher for ``settings``.

    Camoufox patches the Firefox build itself (navigator.webdriver, canvas,
    WebGL, fonts), so the fingerprint is consistent without injected scripts.
    """
    from camoufox.async_api import AsyncCamoufox

    options = {
        "headless": settings.headless,
        "os": settings.browser_os,
    }
    if settings.executable_path:
        options["executable_path"] = str(settings.executable_path)

    return AsyncCamoufox(**options)


class BrowserSession:
    """
    Scoped owner of one browser instance and one page.

    Use as ``async with``: the browser is released exactly once on every
    exit path, including when page setup itself fails.
    """

    def __init__(self, settings: ScraperSettings, browser_factory: BrowserFactory = camoufox_browser):
        self.settings = settings
        self.browser_factory = browser_factory
        self.page = None
        self._launcher: Optional[AsyncContextManager] = None
        self._released = False

    async def __aenter__(self) -> "BrowserSession":
        self._launcher = self.browser_factory(self.settings)
        browser = await self._launcher.__aenter__()
        logger.debug("🦊 Browser launched")

        try:
            page_options = {}
            if self.settings.user_agent:
                page_options["user_agent"] = self.settings.user_agent
            self.page = await browser.new_page(**page_options)
            self.page.set_default_timeout(self.settings.operation_timeout * 1000)
            self.page.set_default_navigation_timeout(self.settings.navigation_timeout * 1000)
        except BaseException as e:
            await self._release(type(e), e, e.__traceback__)
            raise

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self._release(exc_type, exc_val, exc_tb)
        return False

    async def _release(self, exc_type, exc_val, exc_tb) -> None:
        if self._released or self._launcher is None:
            return
        self._released = True

        try:
            await self._launcher.__aexit__(exc_type, exc_val, exc_tb)
            logger.debug("Browser closed")
        except Exception as e:
            # Never let a teardown error replace the request outcome
            logger.warning(f"Browser did not close cleanly: {e}")


def parse_request(url) -> ScrapeRequest:
    """
    Validate raw input into a ScrapeRequest.

    Raises:
        ValidationError: If the URL is missing or not an absolute http(s) URL
    """
    if url is None or not isinstance(url, str) or not url.strip():
        raise ValidationError("Missing URL")

    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid URL: {url!r} is not an absolute http(s) URL")

    return ScrapeRequest(target_url=url)


async def run_scrape(
    request: ScrapeRequest,
    settings: ScraperSettings,
    browser_factory: BrowserFactory = camoufox_browser,
    resolver: Optional[ChallengeLoginResolver] = None,
    request_id: Optional[str] = None,
) -> ScrapeResult:
    """
    Render ``request.target_url`` and return the final document.

    Never raises: every failure converges on a failure ScrapeResult, and no
    partial HTML is returned alongside a failure.

    Args:
        request: Validated request
        settings: Process settings (credentials, timeouts, policies)
        browser_factory: Builds the browser launcher (Camoufox by default)
        resolver: Optional pre-built resolver (tests inject fakes here)
        request_id: Correlation id for logs and diagnostics
    """
    request_id = request_id or uuid.uuid4().hex[:8]
    resolver = resolver or ChallengeLoginResolver(settings)

    with logger.contextualize(request_id=request_id):
        start_time = time.monotonic()
        logger.info(f"▶ Scrape requested: {request.target_url}")

        try:
            async with BrowserSession(settings, browser_factory) as session:
                try:
                    result = await _drive(session.page, request, settings, resolver)
                except Exception as e:
                    await capture_failure(session.page, settings.screenshot_dir, request_id, e)
                    raise

        except ScraperError as e:
            elapsed = time.monotonic() - start_time
            logger.error(f"❌ Scrape failed ({e.kind.value}) after {elapsed:.1f}s: {e}")
            return ScrapeResult.failure(e.kind, str(e))

        except Exception as e:
            elapsed = time.monotonic() - start_time
            wrapped = UnexpectedFailure(f"{type(e).__name__}: {e}")
            logger.exception(f"❌ Unexpected scrape failure after {elapsed:.1f}s: {e}")
            return ScrapeResult.failure(wrapped.kind, str(wrapped))

        elapsed = time.monotonic() - start_time
        status = "degraded " if result.degraded else ""
        logger.success(
            f"✓ Scrape complete ({status}{len(result.html)/1024:.1f}KB) in {elapsed:.1f}s"
        )
        return result


async def _drive(
    page, request: ScrapeRequest, settings: ScraperSettings, resolver: ChallengeLoginResolver
) -> ScrapeResult:
    auth_attempts = 0
    notes = []
    degraded = False

    if settings.login_url and resolver.authenticator is not None:
        eager = await resolver.login_first(page, settings.login_url)
        auth_attempts = eager.auth_attempts
        degraded = eager.degraded
        notes.extend(eager.notes)

    await navigate(page, request.target_url, settings)
    resolution = await resolver.resolve(page, request.target_url, auth_attempts=auth_attempts)

    html = await page.content()
    return ScrapeResult.success(
        html,
        degraded=degraded or resolution.degraded,
        notes=notes + resolution.notes,
    )


async def scrape_url(
    url,
    settings: ScraperSettings,
    browser_factory: BrowserFactory = camoufox_browser,
) -> ScrapeResult:
    """Validate ``url`` and run the pipeline; invalid input never launches a browser"""
    try:
        request = parse_request(url)
    except ValidationError as e:
        logger.warning(f"Rejected scrape request: {e}")
        return ScrapeResult.failure(e.kind, str(e))

    return await run_scrape(request, settings, browser_factory=browser_factory)
