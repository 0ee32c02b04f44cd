import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from fakes import (
    CONTENT_HTML,
    CREDENTIALS,
    TARGET_URL,
    FakeBrowserFactory,
    FakeLauncher,
    FakePage,
    challenge_doc,
    content_doc,
    login_doc,
    make_settings,
    navigation_error,
    password_doc,
)
from stealth_scraper.config import POLICY_PASSTHROUGH
from stealth_scraper.exceptions import ValidationError
from stealth_scraper.models import ErrorKind, ScrapeRequest
from stealth_scraper.session import BrowserSession, parse_request, run_scrape, scrape_url


class FailingCloseLauncher(FakeLauncher):
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await super().__aexit__(exc_type, exc_val, exc_tb)
        raise RuntimeError("browser process already gone")


@pytest.mark.parametrize("url", [None, "", "   ", 42])
def test_parse_request_rejects_missing_url(url):
    with pytest.raises(ValidationError, match="Missing URL"):
        parse_request(url)


@pytest.mark.parametrize("url", ["example.com", "ftp://example.com/file", "https://", "/relative/path"])
def test_parse_request_rejects_malformed_url(url):
    with pytest.raises(ValidationError, match="Invalid URL"):
        parse_request(url)


def test_parse_request_strips_whitespace():
    assert parse_request("  https://example.com/jobs  ") == ScrapeRequest("https://example.com/jobs")


@pytest.mark.asyncio
async def test_invalid_url_never_launches_a_browser(settings):
    factory = FakeBrowserFactory(FakePage({}))

    result = await scrape_url("not a url", settings, browser_factory=factory)

    assert not result.ok
    assert result.error_kind is ErrorKind.VALIDATION
    assert factory.launches == 0


@pytest.mark.asyncio
async def test_content_page_returns_html_and_releases_browser(settings):
    page = FakePage({TARGET_URL: content_doc()})
    factory = FakeBrowserFactory(page)

    result = await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert result.ok
    assert result.html == CONTENT_HTML
    assert not result.degraded
    assert page.gotos == [TARGET_URL]
    assert (factory.launches, factory.closes, factory.live) == (1, 1, 0)


@pytest.mark.asyncio
async def test_page_gets_bounded_default_timeouts():
    settings = make_settings(operation_timeout=12.0, navigation_timeout=40.0)
    page = FakePage({TARGET_URL: content_doc()})

    await scrape_url(TARGET_URL, settings, browser_factory=FakeBrowserFactory(page))

    assert page.default_timeout == 12000
    assert page.default_navigation_timeout == 40000


@pytest.mark.asyncio
async def test_user_agent_override_is_passed_to_new_page():
    settings = make_settings(user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64)")
    factory = FakeBrowserFactory(FakePage({TARGET_URL: content_doc()}))

    await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert factory.browser.new_page_kwargs == [
        {"user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"}
    ]


@pytest.mark.asyncio
async def test_unresolved_challenge_fails_and_releases_once(settings):
    page = FakePage({TARGET_URL: challenge_doc()}, challenge_clears_to=None)
    factory = FakeBrowserFactory(page)

    result = await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert result.error_kind is ErrorKind.CHALLENGE_UNRESOLVED
    assert result.html is None
    assert result.message
    assert factory.closes == 1
    assert factory.live == 0


@pytest.mark.asyncio
async def test_navigation_failure_is_reported(settings):
    page = FakePage({}, goto_error=navigation_error())
    factory = FakeBrowserFactory(page)

    result = await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert result.error_kind is ErrorKind.NAVIGATION
    assert "ERR_NAME_NOT_RESOLVED" in result.message
    assert factory.live == 0


@pytest.mark.asyncio
async def test_launch_failure_is_unexpected(settings):
    factory = FakeBrowserFactory(launch_error=RuntimeError("Camoufox binary not found"))

    result = await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert result.error_kind is ErrorKind.UNEXPECTED
    assert "Camoufox binary not found" in result.message
    assert factory.live == 0


@pytest.mark.asyncio
async def test_page_setup_failure_still_releases_browser(settings):
    factory = FakeBrowserFactory(
        FakePage({}), new_page_error=PlaywrightError("Target page, context or browser has been closed")
    )

    result = await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert result.error_kind is ErrorKind.UNEXPECTED
    assert (factory.launches, factory.closes, factory.live) == (1, 1, 0)


@pytest.mark.asyncio
async def test_teardown_error_does_not_replace_outcome(settings):
    factory = FakeBrowserFactory(FakePage({TARGET_URL: content_doc()}))

    def launcher(s):
        factory.settings_seen.append(s)
        return FailingCloseLauncher(factory)

    result = await scrape_url(TARGET_URL, settings, browser_factory=launcher)

    assert result.ok
    assert factory.closes == 1


@pytest.mark.asyncio
async def test_browser_session_releases_exactly_once(settings):
    factory = FakeBrowserFactory(FakePage({}))
    session = BrowserSession(settings, factory)

    async with session:
        pass
    await session._release(None, None, None)

    assert factory.closes == 1


@pytest.mark.asyncio
async def test_failure_screenshot_written_when_configured(tmp_path):
    settings = make_settings(screenshot_dir=tmp_path)
    page = FakePage({TARGET_URL: challenge_doc()}, challenge_clears_to=None)

    result = await run_scrape(
        ScrapeRequest(TARGET_URL),
        settings,
        browser_factory=FakeBrowserFactory(page),
        request_id="req42",
    )

    assert not result.ok
    assert page.screenshots == 1
    pngs = list(tmp_path.glob("failure_*_req42.png"))
    assert len(pngs) == 1
    assert list(tmp_path.glob("failure_*_req42.json"))


@pytest.mark.asyncio
async def test_screenshot_error_never_masks_primary_error(tmp_path):
    settings = make_settings(screenshot_dir=tmp_path)
    page = FakePage(
        {TARGET_URL: challenge_doc()},
        challenge_clears_to=None,
        screenshot_error=PlaywrightError("Target closed"),
    )
    factory = FakeBrowserFactory(page)

    result = await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert result.error_kind is ErrorKind.CHALLENGE_UNRESOLVED
    assert not list(tmp_path.glob("*.png"))
    assert factory.live == 0


@pytest.mark.asyncio
async def test_no_screenshot_on_success(tmp_path):
    settings = make_settings(screenshot_dir=tmp_path)
    page = FakePage({TARGET_URL: content_doc()})

    await scrape_url(TARGET_URL, settings, browser_factory=FakeBrowserFactory(page))

    assert page.screenshots == 0
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_login_required_without_credentials_fails(settings):
    factory = FakeBrowserFactory(FakePage({TARGET_URL: login_doc(TARGET_URL)}))

    result = await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert result.error_kind is ErrorKind.LOGIN_REQUIRED
    assert result.html is None


@pytest.mark.asyncio
async def test_passthrough_returns_degraded_login_page():
    settings = make_settings(missing_credentials_policy=POLICY_PASSTHROUGH)
    factory = FakeBrowserFactory(FakePage({TARGET_URL: login_doc(TARGET_URL)}))

    result = await scrape_url(TARGET_URL, settings, browser_factory=factory)

    assert result.ok
    assert result.degraded
    assert "login_username" in result.html
    assert result.notes == ["login_required: no credentials configured"]


@pytest.mark.asyncio
async def test_eager_login_runs_before_target():
    login_url = "https://example.com/ab/account-security/login"
    settings = make_settings(credentials=CREDENTIALS, login_url=login_url)
    page = FakePage(
        {login_url: login_doc(login_url), TARGET_URL: content_doc()},
        transitions={
            "#login_password_continue": password_doc(login_url),
            "#login_control_continue": content_doc("https://example.com/nx/find-work/"),
        },
    )

    result = await scrape_url(TARGET_URL, settings, browser_factory=FakeBrowserFactory(page))

    assert result.ok
    assert not result.degraded
    assert page.gotos == [login_url, TARGET_URL]
    assert page.typed["#login_password"] == CREDENTIALS.password


@pytest.mark.asyncio
async def test_login_url_ignored_without_credentials(settings):
    login_url = "https://example.com/ab/account-security/login"
    settings = make_settings(login_url=login_url)
    page = FakePage({TARGET_URL: content_doc()})

    result = await scrape_url(TARGET_URL, settings, browser_factory=FakeBrowserFactory(page))

    assert result.ok
    assert page.gotos == [TARGET_URL]


@pytest.mark.asyncio
async def test_concurrent_requests_use_separate_sessions(settings):
    first = FakeBrowserFactory(FakePage({TARGET_URL: content_doc()}))
    second = FakeBrowserFactory(FakePage({TARGET_URL: login_doc(TARGET_URL)}))

    ok, failed = await asyncio.gather(
        scrape_url(TARGET_URL, settings, browser_factory=first),
        scrape_url(TARGET_URL, settings, browser_factory=second),
    )

    assert ok.ok and ok.html == CONTENT_HTML
    assert failed.error_kind is ErrorKind.LOGIN_REQUIRED
    assert first.live == second.live == 0


@pytest.mark.asyncio
async def test_target_timeout_after_login_returns_degraded_page():
    settings = make_settings(credentials=CREDENTIALS)
    landing = content_doc("https://example.com/nx/find-work/")

    class TargetTimesOutAfterLogin(FakePage):
        async def goto(self, url, wait_until=None, timeout=None):
            if self.gotos:
                self.gotos.append(url)
                raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
            return await super().goto(url, wait_until=wait_until, timeout=timeout)

    page = TargetTimesOutAfterLogin(
        {TARGET_URL: login_doc(TARGET_URL)},
        transitions={
            "#login_password_continue": password_doc(TARGET_URL),
            "#login_control_continue": landing,
        },
    )

    result = await scrape_url(TARGET_URL, settings, browser_factory=FakeBrowserFactory(page))

    assert result.ok
    assert result.degraded
    assert result.html == landing.html
    assert any("re-navigation failed" in note for note in result.notes)
