"""Signal matchers for page state classification

Markup on third-party challenge and login pages drifts without notice, so
every marker lives here as data. Add a new site variant by extending a
``SignalSet`` (and bumping its version) rather than adding branches to the
classifier.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Pattern, Tuple

BODY_PATTERN = re.compile(r"<body[\s>]", re.IGNORECASE)


def _compile(patterns: Dict[str, str]) -> Dict[str, Pattern]:
    return {name: re.compile(pattern, re.IGNORECASE) for name, pattern in patterns.items()}


def _first_match(matchers: Dict[str, Pattern], html: str) -> Optional[str]:
    for name, pattern in matchers.items():
        if pattern.search(html):
            return name
    return None


@dataclass(frozen=True)
class SignalSet:
    """
    Versioned collection of classification signals.

    Title markers and URL patterns are case-insensitive substrings. DOM
    markers are regular expressions searched in the serialized document.
    Each matcher has a name so logs can say which signal fired.
    """

    version: str
    challenge_titles: Dict[str, str] = field(default_factory=dict)
    challenge_urls: Dict[str, str] = field(default_factory=dict)
    challenge_dom: Dict[str, Pattern] = field(default_factory=dict)
    login_identifier_dom: Dict[str, Pattern] = field(default_factory=dict)
    login_submit_dom: Dict[str, Pattern] = field(default_factory=dict)

    # Wrapper nodes that should disappear once a challenge is solved
    challenge_wrapper_selectors: Tuple[str, ...] = ()

    # Login protocol selectors, tried in order
    username_selectors: Tuple[str, ...] = ()
    username_submit_selectors: Tuple[str, ...] = ()
    password_selectors: Tuple[str, ...] = ()
    password_submit_selectors: Tuple[str, ...] = ()

    def match_challenge(self, title: str, url: str, html: str) -> Optional[str]:
        """Return the name of the first challenge signal present, if any"""
        title_lower = title.lower()
        for name, marker in self.challenge_titles.items():
            if marker.lower() in title_lower:
                return f"title:{name}"

        url_lower = url.lower()
        for name, pattern in self.challenge_urls.items():
            if pattern.lower() in url_lower:
                return f"url:{name}"

        for name, pattern in self.challenge_dom.items():
            if pattern.search(html):
                return f"dom:{name}"

        return None

    def match_login(self, html: str) -> Optional[str]:
        """Return ``identifier+submit`` names when BOTH markers are present"""
        identifier = _first_match(self.login_identifier_dom, html)
        if identifier is None:
            return None

        # A lone input is not enough; unrelated forms (newsletter, search) have those
        submit = _first_match(self.login_submit_dom, html)
        if submit is None:
            return None

        return f"login:{identifier}+{submit}"

    def extend(self, version: str, **additions) -> "SignalSet":
        """
        Return a new set with extra matchers merged in.

        Dict-valued fields are merged (new names win); tuple-valued fields
        get the new selectors appended.
        """
        changes = {"version": version}
        for name, extra in additions.items():
            current = getattr(self, name)
            if isinstance(current, dict):
                if name.endswith("_dom"):
                    extra = _compile(extra)
                changes[name] = {**current, **extra}
            elif isinstance(current, tuple):
                changes[name] = current + tuple(extra)
            else:
                raise TypeError(f"Cannot extend field {name!r}")
        return replace(self, **changes)


DEFAULT_SIGNALS = SignalSet(
    version="2025.1",
    challenge_titles={
        "just_a_moment": "just a moment",
        "please_wait": "please wait",
        "checking_browser": "checking your browser",
        "attention_required": "attention required",
        "verifying_human": "verify you are human",
        "security_check": "security check",
        "ddos_guard": "ddos-guard",
    },
    challenge_urls={
        "cf_challenge_platform": "/cdn-cgi/challenge-platform",
        "cf_chl_token": "__cf_chl_",
        "akamai_path": "/_sec/cp_challenge",
        "akamai_resubmit": "akamai-challenge-resubmit",
        "perimeterx_block": "/px/captcha",
    },
    challenge_dom=_compile(
        {
            "cf_browser_verification": r"cf-browser-verification",
            "cf_chl_opt": r"_cf_chl_opt",
            "cf_challenge_running": r"cf-challenge-running",
            "cf_challenge_form": r"id=[\"']challenge-form[\"']",
            "cf_turnstile_script": r"challenges\.cloudflare\.com/turnstile",
            "akamai_challenge_form": r"sec_chlge_form",
            "akamai_challenge_script": r"cp_clge_done",
            "akamai_sec_container": r"class=[\"']sec-container[\"']",
            "perimeterx_captcha": r"id=[\"']px-captcha[\"']",
        }
    ),
    login_identifier_dom=_compile(
        {
            "login_username_id": r"id=[\"']login_username[\"']",
            "login_username_name": r"name=[\"']login\[username\][\"']",
            "username_autocomplete": r"<input[^>]+autocomplete=[\"']username[\"']",
        }
    ),
    login_submit_dom=_compile(
        {
            "password_continue": r"id=[\"']login_password_continue[\"']",
            "control_continue": r"id=[\"']login_control_continue[\"']",
            "submit_button": r"<button[^>]+type=[\"']submit[\"']",
            "submit_input": r"<input[^>]+type=[\"']submit[\"']",
        }
    ),
    challenge_wrapper_selectors=(
        "#challenge-running",
        "#challenge-form",
        "#cf-challenge-running",
        ".sec-container",
        "#px-captcha",
    ),
    username_selectors=(
        "#login_username",
        "input[name='login[username]']",
        "input[autocomplete='username']",
    ),
    username_submit_selectors=(
        "#login_password_continue",
        "button[button-role='continue']",
        "button[type='submit']",
    ),
    password_selectors=(
        "#login_password",
        "input[name='login[password]']",
        "input[type='password']",
    ),
    password_submit_selectors=(
        "#login_control_continue",
        "button[button-role='login']",
        "button[type='submit']",
    ),
)
