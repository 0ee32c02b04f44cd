import pytest

from fakes import CREDENTIALS, make_settings
from stealth_scraper.config import ScraperSettings


@pytest.fixture
def settings() -> ScraperSettings:
    return make_settings()


@pytest.fixture
def settings_with_credentials() -> ScraperSettings:
    return make_settings(credentials=CREDENTIALS)
