"""Credentialed login protocol for login-walled targets"""

from typing import Optional, Sequence

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from .exceptions import AuthenticationIncomplete
from .human_typing import HumanTyping
from .models import Credentials
from .signals import DEFAULT_SIGNALS, SignalSet


class Authenticator:
    """
    Drives a two-step identifier/password login form.

    Every step is bounded by ``step_timeout``. Any failure (selector not
    found, timeout, detached element) is raised as
    ``AuthenticationIncomplete`` with the step that failed; the resolver
    decides what to do with it.
    """

    def __init__(
        self,
        credentials: Credentials,
        step_timeout: float = 20.0,
        signals: SignalSet = DEFAULT_SIGNALS,
        typing: Optional[HumanTyping] = None,
    ):
        """
        Initialize authenticator.

        Args:
            credentials: Username/password pair to enter
            step_timeout: Seconds allowed per protocol step
            signals: Signal set providing the login selectors
            typing: Keystroke pacing (defaults to HumanTyping())
        """
        self.credentials = credentials
        self.step_timeout = step_timeout
        self.signals = signals
        self.typing = typing or HumanTyping()

    @property
    def _timeout_ms(self) -> float:
        return self.step_timeout * 1000

    async def login(self, page) -> None:
        """
        Run the login protocol on the current page.

        Raises:
            AuthenticationIncomplete: If any step cannot be progressed
        """
        logger.info("🔐 Login wall detected, authenticating...")

        # Step 1: identifier
        username_field = await self._find_first(
            page, self.signals.username_selectors, step="username_field"
        )
        await self._run_step(
            "type_username",
            self.typing.type_into(page, username_field, self.credentials.username),
        )
        logger.debug("   ✓ Username entered")

        # Step 2: continue to password
        await self._submit(page, self.signals.username_submit_selectors, step="username_submit")

        # Step 3: password (often rendered only after the identifier step)
        password_field = await self._wait_for_first(
            page, self.signals.password_selectors, step="password_field"
        )
        await self._run_step(
            "type_password",
            self.typing.type_into(page, password_field, self.credentials.password),
        )
        logger.debug("   ✓ Password entered")

        # Step 4: submit and wait for the navigation it triggers. The waiter is
        # armed before the click; the login page is already DOM-ready, so a
        # load-state wait afterwards would return at once
        try:
            async with page.expect_navigation(
                wait_until="domcontentloaded", timeout=self._timeout_ms
            ):
                await self._submit(
                    page, self.signals.password_submit_selectors, step="password_submit"
                )
        except PlaywrightError as e:
            raise AuthenticationIncomplete(
                f"Login step 'post_login_navigation' failed: {e}", step="post_login_navigation"
            ) from e

        logger.success(f"✓ Login submitted, landed on {page.url}")

    async def _run_step(self, step: str, awaitable):
        try:
            return await awaitable
        except PlaywrightError as e:
            raise AuthenticationIncomplete(f"Login step '{step}' failed: {e}", step=step) from e

    async def _find_first(self, page, selectors: Sequence[str], step: str):
        """Return the first visible element among ``selectors``"""
        per_selector_ms = max(self._timeout_ms / max(len(selectors), 1), 1000)
        for selector in selectors:
            try:
                element = await page.wait_for_selector(
                    selector, state="visible", timeout=per_selector_ms
                )
            except PlaywrightError:
                continue

            if element:
                logger.debug(f"   Found {step}: {selector}")
                return element

        raise AuthenticationIncomplete(
            f"Login step '{step}' failed: none of {list(selectors)} became visible",
            step=step,
        )

    async def _wait_for_first(self, page, selectors: Sequence[str], step: str):
        """Wait (bounded) for any of ``selectors`` to appear"""
        combined = ", ".join(selectors)
        try:
            element = await page.wait_for_selector(
                combined, state="visible", timeout=self._timeout_ms
            )
        except PlaywrightError as e:
            raise AuthenticationIncomplete(
                f"Login step '{step}' failed: {combined} did not appear ({e})", step=step
            ) from e

        if element is None:
            raise AuthenticationIncomplete(
                f"Login step '{step}' failed: {combined} did not appear", step=step
            )
        logger.debug(f"   Found {step}")
        return element

    async def _submit(self, page, selectors: Sequence[str], step: str) -> None:
        """Click the first present submit control, falling back to Enter"""
        for selector in selectors:
            try:
                control = await page.query_selector(selector)
            except PlaywrightError:
                continue

            if control is None:
                continue

            await self._run_step(step, control.click(timeout=self._timeout_ms))
            logger.debug(f"   ✓ Clicked {selector}")
            return

        logger.debug(f"   No {step} control found, pressing Enter")
        await self._run_step(step, page.keyboard.press("Enter"))
