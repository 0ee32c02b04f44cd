"""Stealth Scraper
Renders pages behind anti-bot challenges and login walls in a stealth headless browser
"""

__version__ = "0.3.0"

from .authenticator import Authenticator
from .classifier import PageClassifier, classify_snapshot
from .config import ScraperSettings
from .exceptions import (
    AuthenticationIncomplete,
    ChallengeUnresolved,
    LoginRequiredError,
    NavigationError,
    ResolverBudgetExceeded,
    ScraperError,
    UnexpectedFailure,
    ValidationError,
)
from .models import Credentials, ErrorKind, PageSnapshot, PageState, ScrapeRequest, ScrapeResult
from .resolver import ChallengeLoginResolver
from .session import BrowserSession, parse_request, run_scrape, scrape_url
from .signals import DEFAULT_SIGNALS, SignalSet

__all__ = [
    "__version__",
    "Authenticator",
    "BrowserSession",
    "ChallengeLoginResolver",
    "PageClassifier",
    "ScraperSettings",
    "SignalSet",
    "DEFAULT_SIGNALS",
    "AuthenticationIncomplete",
    "ChallengeUnresolved",
    "LoginRequiredError",
    "NavigationError",
    "ResolverBudgetExceeded",
    "ScraperError",
    "UnexpectedFailure",
    "ValidationError",
    "Credentials",
    "ErrorKind",
    "PageSnapshot",
    "PageState",
    "ScrapeRequest",
    "ScrapeResult",
    "classify_snapshot",
    "parse_request",
    "run_scrape",
    "scrape_url",
]
