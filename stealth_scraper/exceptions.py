"""Custom exception classes for the render pipeline"""

from .models import ErrorKind


class ScraperError(Exception):
    """Base exception for scraper errors"""

    kind = ErrorKind.UNEXPECTED


class ValidationError(ScraperError):
    """Raised when the request is missing a URL or the URL is malformed"""

    kind = ErrorKind.VALIDATION


class NavigationError(ScraperError):
    """Raised when the browser fails to load a page within its timeout"""

    kind = ErrorKind.NAVIGATION


class ChallengeUnresolved(ScraperError):
    """Raised when an anti-bot challenge does not clear in time

    Not retried at this layer; callers may retry the whole request.
    """

    kind = ErrorKind.CHALLENGE_UNRESOLVED


class LoginRequiredError(ScraperError):
    """Raised when a login wall is hit with no credentials configured
    and the missing-credentials policy is ``fail``"""

    kind = ErrorKind.LOGIN_REQUIRED


class ResolverBudgetExceeded(ScraperError):
    """Raised when the resolver loop runs out of iterations

    Distinct from selector failures: this means the site kept cycling
    between states (challenge -> login -> challenge ...) or never settled.
    """

    kind = ErrorKind.RESOLVER_BUDGET_EXCEEDED


class AuthenticationIncomplete(ScraperError):
    """Raised inside the login protocol when a step cannot be progressed

    The resolver recovers from this locally and extracts whatever page is
    present, flagging the result as degraded.
    """

    def __init__(self, message: str, step: str = "unknown"):
        self.step = step
        super().__init__(message)


class UnexpectedFailure(ScraperError):
    """Wraps any other exception raised during the pipeline"""

    kind = ErrorKind.UNEXPECTED
