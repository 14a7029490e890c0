import logging
import re
from urllib.parse import urljoin

from contact_enrichment.extractors.base import Extractor, PageDocument, walk_values
from contact_enrichment.schemas.contact import ContactFindings, SocialProfile

logger = logging.getLogger(__name__)

_SEG = r"([A-Za-z0-9_.\-]+)"

# (platform, pattern); group 1 is the username
SOCIAL_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("twitter", re.compile(rf"^https?://(?:www\.|mobile\.)?(?:twitter|x)\.com/@?{_SEG}/?(?:[?#].*)?$", re.I)),
    ("facebook", re.compile(rf"^https?://(?:www\.|m\.|web\.)?(?:facebook|fb)\.com/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("linkedin", re.compile(rf"^https?://(?:[a-z]{{2,3}}\.)?linkedin\.com/(?:company|in|school|showcase)/{_SEG}", re.I)),
    ("instagram", re.compile(rf"^https?://(?:www\.)?instagram\.com/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("youtube", re.compile(rf"^https?://(?:www\.|m\.)?youtube\.com/(?:channel/|user/|c/|@){_SEG}", re.I)),
    ("pinterest", re.compile(rf"^https?://(?:[a-z]{{2}}\.|www\.)?pinterest\.[a-z.]+/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("github", re.compile(rf"^https?://(?:www\.)?github\.com/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("medium", re.compile(rf"^https?://(?:www\.)?medium\.com/@?{_SEG}", re.I)),
    ("reddit", re.compile(rf"^https?://(?:www\.|old\.)?reddit\.com/(?:r|user|u)/{_SEG}", re.I)),
    ("tumblr", re.compile(r"^https?://([A-Za-z0-9\-]+)\.tumblr\.com", re.I)),
    ("vimeo", re.compile(rf"^https?://(?:www\.)?vimeo\.com/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("dribbble", re.compile(rf"^https?://(?:www\.)?dribbble\.com/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("behance", re.compile(rf"^https?://(?:www\.)?behance\.net/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("flickr", re.compile(rf"^https?://(?:www\.)?flickr\.com/(?:photos|people)/{_SEG}", re.I)),
    ("soundcloud", re.compile(rf"^https?://(?:www\.)?soundcloud\.com/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("tiktok", re.compile(rf"^https?://(?:www\.)?tiktok\.com/@{_SEG}", re.I)),
    ("snapchat", re.compile(rf"^https?://(?:www\.)?snapchat\.com/add/{_SEG}", re.I)),
    ("discord", re.compile(rf"^https?://(?:www\.)?discord\.(?:gg|com/invite)/{_SEG}", re.I)),
    ("telegram", re.compile(rf"^https?://(?:www\.)?(?:t\.me|telegram\.me)/{_SEG}/?(?:[?#].*)?$", re.I)),
    ("whatsapp", re.compile(r"^https?://(?:wa\.me/|api\.whatsapp\.com/send/?\?phone=)\+?(\d{7,15})", re.I)),
)

# Path segments that are never a profile handle
_RESERVED = frozenset({
    "share", "sharer", "sharer.php", "intent", "intents", "plugins", "dialog",
    "login", "login.php", "signup", "home", "home.php", "search", "hashtag",
    "explore", "embed", "watch", "p", "reel", "tr", "policies", "privacy",
    "help", "about", "legal", "terms", "settings", "i", "sharearticle",
    "pages", "groups", "events", "marketplace", "pin", "status", "feed", "profile.php",
})

_SHARE_HINT_RE = re.compile(r"/(?:sharer|share|intent|shareArticle|dialog)(?:[/.?]|$)", re.I)


def match_profile(url: str) -> tuple[str, str] | None:
    """Return ``(platform, username)`` for a profile URL, or None."""
    if not url or _SHARE_HINT_RE.search(url):
        return None
    for platform, pattern in SOCIAL_PATTERNS:
        m = pattern.match(url)
        if not m:
            continue
        username = m.group(1).rstrip(".")
        if not username or username.lower() in _RESERVED:
            return None
        return platform, username
    return None


class SocialProfileExtractor(Extractor):
    name = "social"

    def extract_document(self, doc: PageDocument) -> ContactFindings:
        profiles: list[SocialProfile] = []
        index: dict[tuple[str, str], SocialProfile] = {}

        def add(url: str, display_name: str | None = None) -> None:
            found = match_profile(url)
            if found is None:
                return
            platform, username = found
            key = (platform, username.lower())
            known = index.get(key)
            if known is not None:
                if not known.display_name and display_name:
                    known.display_name = display_name
                return
            profile = SocialProfile(
                platform=platform,
                url=url.split("#", 1)[0],
                username=username,
                display_name=display_name or None,
            )
            index[key] = profile
            profiles.append(profile)

        for a in doc.soup.find_all("a", href=True):
            href = urljoin(doc.page_url, a["href"].strip())
            label = a.get("title") or a.get("aria-label") or a.get_text(" ", strip=True)
            add(href, label.strip() if label else None)

        for node in doc.json_ld:
            for same_as in walk_values(node, "sameAs"):
                values = same_as if isinstance(same_as, list) else [same_as]
                for value in values:
                    if isinstance(value, str):
                        add(value.strip())

        handle = doc.soup.find("meta", attrs={"name": "twitter:site"})
        if handle and handle.get("content", "").startswith("@"):
            add(f"https://twitter.com/{handle['content'][1:]}")

        return ContactFindings(social_profiles=profiles)
