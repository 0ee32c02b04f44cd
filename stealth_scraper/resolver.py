"""Challenge/login resolver state machine

Runs classify -> act -> re-classify until the page shows real content or a
bounded budget is exhausted:

    CHALLENGE       wait for markers to clear, settle, re-classify
    LOGIN_REQUIRED  authenticate (or apply the missing-credentials policy),
                    re-navigate to the target, re-classify
    CONTENT         done
    UNKNOWN         short settle, re-classify; escalate after N in a row
"""

from typing import Optional

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .authenticator import Authenticator
from .classifier import PageClassifier
from .config import POLICY_PASSTHROUGH, ScraperSettings
from .exceptions import (
    AuthenticationIncomplete,
    ChallengeUnresolved,
    LoginRequiredError,
    NavigationError,
    ResolverBudgetExceeded,
)
from .models import PageState, Resolution

# Resolves once no challenge title marker, URL pattern or DOM marker is present
_CHALLENGE_CLEARED_JS = """
([titles, urls, markers]) => {
    const title = (document.title || '').toLowerCase();
    const href = window.location.href.toLowerCase();
    const html = document.documentElement ? document.documentElement.outerHTML : '';
    return !titles.some(t => title.includes(t)) &&
        !urls.some(u => href.includes(u)) &&
        !markers.some(m => new RegExp(m, 'i').test(html));
}
"""

_CONTEXT_LOST_MARKERS = ("execution context was destroyed", "target closed")


async def navigate(page, url: str, settings: ScraperSettings) -> None:
    """
    Navigate and wait for the DOM, then give ``load`` a short grace period.

    Pages with long-polling widgets never reach network idle, so DOM ready
    is the commit point and ``load`` is optional.

    Raises:
        NavigationError: If the page cannot be loaded within the timeout
    """
    logger.info(f"🌐 Navigating to {url}")
    try:
        response = await page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=settings.navigation_timeout * 1000,
        )
    except PlaywrightTimeoutError as e:
        raise NavigationError(
            f"Timed out loading {url} after {settings.navigation_timeout:.0f}s"
        ) from e
    except PlaywrightError as e:
        raise NavigationError(f"Failed to load {url}: {e}") from e

    if response is not None:
        # Challenge pages are served as 403/503, so status alone decides nothing
        logger.debug(f"   HTTP {response.status} for {url}")

    try:
        await page.wait_for_load_state("load", timeout=settings.load_grace * 1000)
    except PlaywrightTimeoutError:
        logger.debug(f"   'load' not reached within {settings.load_grace:.0f}s, continuing on DOM ready")


class ChallengeLoginResolver:
    """
    Drives the page from whatever state it is in to CONTENT.

    One resolver per request; it holds no state between ``resolve`` calls
    other than its configuration.
    """

    def __init__(
        self,
        settings: ScraperSettings,
        classifier: Optional[PageClassifier] = None,
        authenticator: Optional[Authenticator] = None,
    ):
        self.settings = settings
        self.classifier = classifier or PageClassifier(content_marker=settings.content_marker)
        self.signals = self.classifier.signals

        if authenticator is None and settings.credentials is not None:
            authenticator = Authenticator(
                settings.credentials,
                step_timeout=settings.login_step_timeout,
                signals=self.signals,
            )
        self.authenticator = authenticator

    async def resolve(self, page, target_url: str, auth_attempts: int = 0) -> Resolution:
        """
        Run the state machine until CONTENT or a terminal failure.

        Args:
            page: Page already navigated to ``target_url``
            target_url: Original target, re-visited after each login
            auth_attempts: Logins already performed in this session
                (e.g. by an eager login before the first navigation)

        Returns:
            Resolution describing the final state; ``degraded`` is set when
            the page is extracted without completing authentication

        Raises:
            ChallengeUnresolved: Challenge markers did not clear in time
            LoginRequiredError: Login wall, no credentials, policy ``fail``
            ResolverBudgetExceeded: Too many iterations or unknown states
        """
        resolution = Resolution(state=PageState.UNKNOWN, auth_attempts=auth_attempts)
        unknown_streak = 0

        while True:
            state, reason = await self.classifier.classify_with_reason(page)
            resolution.state = state

            if state is PageState.CONTENT:
                logger.success(
                    f"✓ Content reached after {resolution.cycles} resolver iteration(s)"
                )
                return resolution

            if resolution.cycles >= self.settings.max_resolver_cycles:
                raise ResolverBudgetExceeded(
                    f"Gave up after {resolution.cycles} resolver iterations; "
                    f"page still classified as {state.value} ({reason})"
                )
            resolution.cycles += 1

            if state is PageState.UNKNOWN:
                unknown_streak += 1
                if unknown_streak > self.settings.unknown_retries:
                    raise ResolverBudgetExceeded(
                        f"Page never settled into recognizable content "
                        f"({unknown_streak} consecutive unknown reads, last: {reason})"
                    )
                logger.debug(
                    f"   Unknown page state ({reason}), re-checking "
                    f"({unknown_streak}/{self.settings.unknown_retries})"
                )
                await page.wait_for_timeout(self.settings.unknown_settle * 1000)
                continue

            unknown_streak = 0

            if state is PageState.CHALLENGE:
                logger.warning(f"🛡️ Challenge detected ({reason}), waiting for it to clear...")
                await self.wait_for_challenge(page)
                continue

            # LOGIN_REQUIRED
            finished = await self._handle_login(page, target_url, resolution, reason)
            if finished:
                return resolution

    async def login_first(self, page, login_url: str) -> Resolution:
        """
        Eager login: visit ``login_url`` and authenticate before the target
        is ever requested. Challenges on the login page are waited out
        within the usual budget. An incomplete login is recorded, not raised.
        """
        resolution = Resolution(state=PageState.UNKNOWN)
        if self.authenticator is None:
            return resolution

        await navigate(page, login_url, self.settings)

        while resolution.cycles < self.settings.max_resolver_cycles:
            state, reason = await self.classifier.classify_with_reason(page)
            resolution.state = state

            if state is PageState.CHALLENGE:
                resolution.cycles += 1
                logger.warning(f"🛡️ Challenge on login page ({reason}), waiting...")
                await self.wait_for_challenge(page)
                continue

            if state is PageState.LOGIN_REQUIRED:
                await self.authenticate(page, resolution)
            else:
                logger.info(f"Login page classified as {state.value}, skipping eager login")
            return resolution

        raise ResolverBudgetExceeded(
            f"Login page {login_url} still challenged after {resolution.cycles} iterations"
        )

    async def wait_for_challenge(self, page) -> None:
        """
        Wait until the challenge title, URL and DOM markers are gone, then
        let post-challenge scripts run.

        Raises:
            ChallengeUnresolved: If the markers are still present at timeout
        """
        timeout_ms = self.settings.challenge_timeout * 1000
        titles = [m.lower() for m in self.signals.challenge_titles.values()]
        urls = [p.lower() for p in self.signals.challenge_urls.values()]
        markers = [p.pattern for p in self.signals.challenge_dom.values()]

        try:
            await page.wait_for_function(
                _CHALLENGE_CLEARED_JS,
                arg=[titles, urls, markers],
                timeout=timeout_ms,
                polling=500,
            )
        except PlaywrightTimeoutError as e:
            logger.error(f"❌ Challenge did not clear within {self.settings.challenge_timeout:.0f}s")
            raise ChallengeUnresolved(
                f"Anti-bot challenge did not clear within {self.settings.challenge_timeout:.0f}s"
            ) from e
        except PlaywrightError as e:
            # The challenge redirecting away tears down the evaluation context
            if not any(marker in str(e).lower() for marker in _CONTEXT_LOST_MARKERS):
                raise
            logger.debug(f"   Challenge navigated away during wait: {e}")

        for selector in self.signals.challenge_wrapper_selectors:
            try:
                if await page.query_selector(selector) is None:
                    continue
                await page.wait_for_selector(selector, state="hidden", timeout=timeout_ms / 4)
            except PlaywrightError:
                # Whatever is still on screen is re-checked by the next classification
                logger.debug(f"   Challenge wrapper {selector} still visible")

        try:
            await page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug("   Post-challenge page did not report DOM ready")

        await page.wait_for_timeout(self.settings.challenge_settle * 1000)
        logger.success("✓ Challenge markers cleared")

    async def authenticate(self, page, resolution: Resolution) -> bool:
        """
        Run one login attempt, recording a failure instead of raising.

        Returns:
            True if the protocol completed, False if it was recorded as
            incomplete (resolution is then marked degraded)
        """
        resolution.auth_attempts += 1
        try:
            await self.authenticator.login(page)
        except AuthenticationIncomplete as e:
            logger.warning(f"⚠️ Authentication incomplete at step '{e.step}': {e}")
            resolution.degraded = True
            resolution.notes.append(f"authentication_incomplete: {e}")
            return False
        return True

    async def _handle_login(
        self, page, target_url: str, resolution: Resolution, reason: str
    ) -> bool:
        """Returns True when the loop should stop and extract the current page"""
        if self.authenticator is None:
            if self.settings.missing_credentials_policy == POLICY_PASSTHROUGH:
                logger.warning("⚠️ Login wall but no credentials configured, extracting as-is")
                resolution.degraded = True
                resolution.notes.append("login_required: no credentials configured")
                return True
            raise LoginRequiredError(
                f"Target requires login ({reason}) and no credentials are configured"
            )

        if resolution.auth_attempts >= self.settings.max_login_attempts:
            logger.warning(
                f"⚠️ Still on login wall after {resolution.auth_attempts} login attempt(s), "
                f"extracting current page"
            )
            resolution.degraded = True
            resolution.notes.append(
                f"authentication_incomplete: login wall persisted after "
                f"{resolution.auth_attempts} attempt(s)"
            )
            return True

        if not await self.authenticate(page, resolution):
            return True

        if self.settings.reset_budget_after_login:
            logger.debug("   Resetting resolver budget after login")
            resolution.cycles = 0

        # The post-login landing page is rarely the target itself
        try:
            await navigate(page, target_url, self.settings)
        except NavigationError as e:
            logger.warning(f"⚠️ Re-navigation after login failed, extracting current page: {e}")
            resolution.degraded = True
            resolution.notes.append(f"authentication_incomplete: re-navigation failed: {e}")
            return True
        return False
