"""Page state classification from live title/URL/DOM signals"""

from typing import Optional, Tuple

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from .models import PageSnapshot, PageState
from .signals import BODY_PATTERN, DEFAULT_SIGNALS, SignalSet


def classify_snapshot(
    snapshot: PageSnapshot,
    signals: SignalSet = DEFAULT_SIGNALS,
    content_marker: Optional[str] = None,
) -> Tuple[PageState, str]:
    """
    Classify one snapshot of the page.

    Challenge wins over login: a challenge page can embed a form, and the
    login wall is only meaningful once the interstitial is gone.

    Returns:
        (state, reason) where reason names the signal that decided it
    """
    challenge = signals.match_challenge(snapshot.title, snapshot.url, snapshot.html)
    if challenge:
        return PageState.CHALLENGE, challenge

    login = signals.match_login(snapshot.html)
    if login:
        return PageState.LOGIN_REQUIRED, login

    if not BODY_PATTERN.search(snapshot.html):
        return PageState.UNKNOWN, "no_body"

    if content_marker and content_marker not in snapshot.html:
        return PageState.UNKNOWN, "content_marker_missing"

    return PageState.CONTENT, "body" if not content_marker else "content_marker"


class PageClassifier:
    """
    Reads the live page and classifies it.

    Reading never mutates the page, so repeated calls on an unchanged page
    return the same state.
    """

    def __init__(
        self,
        signals: SignalSet = DEFAULT_SIGNALS,
        content_marker: Optional[str] = None,
    ):
        self.signals = signals
        self.content_marker = content_marker

    async def snapshot(self, page) -> PageSnapshot:
        """Read title, URL and serialized DOM from the page"""
        title = await page.title()
        html = await page.content()
        return PageSnapshot(title=title or "", url=page.url or "", html=html or "")

    async def classify(self, page) -> PageState:
        state, _ = await self.classify_with_reason(page)
        return state

    async def classify_with_reason(self, page) -> Tuple[PageState, str]:
        try:
            snapshot = await self.snapshot(page)
        except PlaywrightError as e:
            # A navigation in flight destroys the execution context mid-read
            logger.debug(f"Page read failed during classification: {e}")
            return PageState.UNKNOWN, "read_failed"

        state, reason = classify_snapshot(snapshot, self.signals, self.content_marker)
        logger.debug(f"Classified {snapshot.url} as {state.value} ({reason})")
        return state, reason
