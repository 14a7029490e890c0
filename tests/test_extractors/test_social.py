import pytest

from contact_enrichment.extractors.social import SocialProfileExtractor, match_profile

PAGE = "https://acme.io/"


def _profiles(body: str, head: str = ""):
    html = f"<html><head>{head}</head><body>{body}</body></html>"
    return SocialProfileExtractor().extract(html, PAGE).social_profiles


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://twitter.com/acme", ("twitter", "acme")),
        ("https://x.com/@acme", ("twitter", "acme")),
        ("https://www.facebook.com/acme.media/", ("facebook", "acme.media")),
        ("https://www.linkedin.com/company/acme-inc/", ("linkedin", "acme-inc")),
        ("https://uk.linkedin.com/in/jane-doe", ("linkedin", "jane-doe")),
        ("https://www.instagram.com/acme/?hl=en", ("instagram", "acme")),
        ("https://www.youtube.com/@acmetv", ("youtube", "acmetv")),
        ("https://github.com/acme", ("github", "acme")),
        ("https://www.tiktok.com/@acme", ("tiktok", "acme")),
        ("https://wa.me/15551234567", ("whatsapp", "15551234567")),
    ],
)
def test_match_profile(url, expected):
    assert match_profile(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "https://twitter.com/intent/tweet?text=hello",
        "https://twitter.com/share?url=https://acme.io",
        "https://www.facebook.com/sharer/sharer.php?u=https://acme.io",
        "https://www.facebook.com/profile.php?id=100",
        "https://www.linkedin.com/shareArticle?mini=true",
        "https://www.instagram.com/p/",
        "https://acme.io/twitter",
        "",
    ],
)
def test_match_profile_rejects_non_profiles(url):
    assert match_profile(url) is None


def test_extracts_profiles_with_display_names():
    body = (
        '<a href="https://twitter.com/acme" aria-label="Acme on Twitter"></a>'
        '<a href="https://www.linkedin.com/company/acme" title="Acme Inc">in</a>'
    )

    profiles = _profiles(body)

    assert [(p.platform, p.username, p.display_name) for p in profiles] == [
        ("twitter", "acme", "Acme on Twitter"),
        ("linkedin", "acme", "Acme Inc"),
    ]


def test_same_profile_is_reported_once():
    body = '<a href="https://twitter.com/acme"></a><a href="https://x.com/Acme">Follow</a>'

    profiles = _profiles(body)

    assert len(profiles) == 1
    assert profiles[0].url == "https://twitter.com/acme"
    assert profiles[0].display_name == "Follow"


def test_share_buttons_are_ignored():
    body = (
        '<a href="https://twitter.com/intent/tweet?url=https://acme.io">Tweet</a>'
        '<a href="https://www.facebook.com/sharer/sharer.php?u=https://acme.io">Share</a>'
    )

    assert _profiles(body) == []


def test_json_ld_same_as_and_twitter_meta():
    head = '<meta name="twitter:site" content="@acmenews">'
    body = (
        '<script type="application/ld+json">'
        '{"@type": "Organization", "sameAs": ["https://www.instagram.com/acme", "https://acme.io/about"]}'
        "</script>"
    )

    profiles = _profiles(body, head)

    assert [(p.platform, p.username) for p in profiles] == [
        ("instagram", "acme"),
        ("twitter", "acmenews"),
    ]
