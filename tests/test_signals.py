from stealth_scraper.classifier import classify_snapshot
from stealth_scraper.models import PageSnapshot, PageState
from stealth_scraper.signals import DEFAULT_SIGNALS


def test_default_signals_are_versioned():
    assert DEFAULT_SIGNALS.version
    assert DEFAULT_SIGNALS.challenge_titles
    assert DEFAULT_SIGNALS.username_selectors[0] == "#login_username"


def test_extend_adds_site_variant_as_data():
    variant = DEFAULT_SIGNALS.extend(
        "2025.1+acme",
        challenge_titles={"acme_shield": "acme shield is checking"},
        challenge_dom={"acme_widget": r"data-acme-shield"},
        username_selectors=["#acme-login"],
    )

    snapshot = PageSnapshot(
        title="Loading",
        url="https://shop.acme.test/",
        html="<html><body><div data-acme-shield=1></div></body></html>",
    )
    assert classify_snapshot(snapshot, DEFAULT_SIGNALS)[0] is PageState.CONTENT
    assert classify_snapshot(snapshot, variant) == (PageState.CHALLENGE, "dom:acme_widget")

    assert variant.version == "2025.1+acme"
    assert variant.username_selectors[-1] == "#acme-login"
    # The original set is untouched
    assert "acme_shield" not in DEFAULT_SIGNALS.challenge_titles
