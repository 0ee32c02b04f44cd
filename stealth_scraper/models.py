"""Data models and enums for the render pipeline"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class PageState(Enum):
    """Classification of what the browser is currently showing"""

    CHALLENGE = "challenge"  # Anti-bot interstitial running
    LOGIN_REQUIRED = "login_required"  # Login wall in front of the target
    CONTENT = "content"  # Real target content
    UNKNOWN = "unknown"  # Transient, re-evaluate after a wait


class ErrorKind(Enum):
    """Failure categories surfaced to callers"""

    VALIDATION = "validation"
    NAVIGATION = "navigation"
    CHALLENGE_UNRESOLVED = "challenge_unresolved"
    LOGIN_REQUIRED = "login_required"
    RESOLVER_BUDGET_EXCEEDED = "resolver_budget_exceeded"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class Credentials:
    """Site login pair used only when a login wall is encountered"""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class ScrapeRequest:
    """A single render request"""

    target_url: str


@dataclass(frozen=True)
class PageSnapshot:
    """Signals read from the live page at one instant"""

    title: str
    url: str
    html: str


@dataclass
class Resolution:
    """Outcome of the classify/resolve loop"""

    state: PageState
    cycles: int = 0
    auth_attempts: int = 0
    degraded: bool = False
    notes: List[str] = field(default_factory=list)


@dataclass
class ScrapeResult:
    """Either rendered HTML or a failure, never both"""

    html: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    degraded: bool = False
    notes: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(
        cls, html: str, degraded: bool = False, notes: Optional[List[str]] = None
    ) -> "ScrapeResult":
        return cls(html=html, degraded=degraded, notes=list(notes or []))

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str) -> "ScrapeResult":
        return cls(error_kind=error_kind, message=message or error_kind.value)
