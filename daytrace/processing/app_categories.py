"""
App category rules
Maps app identifiers and display names to the coarse categories activity inference works with
"""

from typing import Dict, List, Optional

from daytrace.core.logger import get_logger
from daytrace.models.segments import AppCategory

logger = get_logger(__name__)

# Partial matching skips very short keys ("x" and "max" would match almost anything)
MIN_PARTIAL_KEY_LENGTH = 4

_WORK = [
    "slack", "google docs", "docs", "gmail", "calendar", "google calendar", "figma",
    "notion", "linear", "vs code", "visual studio code", "code", "xcode",
    "android studio", "outlook", "google sheets", "sheets", "excel", "microsoft excel",
    "word", "microsoft word", "powerpoint", "keynote", "numbers", "pages", "jira",
    "asana", "trello", "clickup", "basecamp", "confluence", "github", "gitlab",
    "bitbucket", "terminal", "iterm", "miro", "sketch", "photoshop", "illustrator",
    "canva", "dropbox", "google drive", "evernote", "obsidian", "airtable", "coda",
    "loom", "pycharm", "intellij idea", "cursor",
]

_COMMS = [
    "zoom", "google meet", "meet", "teams", "microsoft teams", "webex", "facetime",
    "messages", "imessage", "whatsapp", "telegram", "signal", "phone", "skype",
    "viber", "line", "wechat", "messenger", "facebook messenger", "mail",
    "apple mail", "spark", "proton mail", "contacts",
]

_SOCIAL = [
    "instagram", "tiktok", "x", "twitter", "reddit", "facebook", "snapchat",
    "linkedin", "threads", "mastodon", "bluesky", "pinterest", "tumblr", "discord",
    "nextdoor", "strava", "goodreads", "letterboxd",
]

_ENTERTAINMENT = [
    "youtube", "netflix", "spotify", "apple music", "music", "twitch", "disney+",
    "podcasts", "overcast", "pocket casts", "hulu", "max", "prime video",
    "apple tv", "plex", "vlc", "audible", "kindle", "books", "news", "youtube music",
    "soundcloud", "tidal", "candy crush", "clash royale", "roblox", "minecraft",
    "fortnite", "steam", "pokemon go",
]

_UTILITY = [
    "maps", "google maps", "waze", "photos", "weather", "calculator", "settings",
    "files", "finder", "notes", "reminders", "wallet", "health", "clock",
    "translate", "shortcuts", "app store", "safari", "chrome", "google chrome",
    "firefox", "edge", "brave", "arc", "1password", "bitwarden", "authenticator",
    "uber", "lyft", "doordash", "amazon",
]

_IGNORE = [
    "springboard", "siri", "screen time", "control center", "notification center",
    "app switcher", "system preferences", "system settings", "spotlight",
    "launchpad", "dock", "mission control", "login window", "loginwindow",
    "screensaver", "installer", "software update", "daytrace",
]


def _build_defaults() -> Dict[str, AppCategory]:
    defaults: Dict[str, AppCategory] = {}
    for category, names in (
        (AppCategory.WORK, _WORK),
        (AppCategory.COMMS, _COMMS),
        (AppCategory.SOCIAL, _SOCIAL),
        (AppCategory.ENTERTAINMENT, _ENTERTAINMENT),
        (AppCategory.UTILITY, _UTILITY),
        (AppCategory.IGNORE, _IGNORE),
    ):
        for name in names:
            defaults[name] = category
    return defaults


DEFAULT_APP_CATEGORIES: Dict[str, AppCategory] = _build_defaults()


def normalize_app_key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


class AppCategoryResolver:
    """Resolves an app to a category

    Lookup order: user overrides, exact default match, partial default match,
    then ``utility``. Both the display name and the app id are tried.
    """

    def __init__(
        self,
        overrides: Optional[Dict[str, AppCategory]] = None,
        defaults: Optional[Dict[str, AppCategory]] = None,
    ):
        self.overrides: Dict[str, AppCategory] = {
            normalize_app_key(k): AppCategory(v) for k, v in (overrides or {}).items()
        }
        self.defaults = defaults if defaults is not None else DEFAULT_APP_CATEGORIES
        # Longest keys first so "youtube music" beats "music"
        self._partial_keys: List[str] = sorted(
            (k for k in self.defaults if len(k) >= MIN_PARTIAL_KEY_LENGTH),
            key=len,
            reverse=True,
        )

    def resolve(self, app_id: str, display_name: Optional[str] = None) -> AppCategory:
        candidates = [normalize_app_key(display_name), normalize_app_key(app_id)]
        candidates = [c for c in candidates if c]

        for key in candidates:
            if key in self.overrides:
                return self.overrides[key]

        for key in candidates:
            if key in self.defaults:
                return self.defaults[key]

        for key in candidates:
            for partial in self._partial_keys:
                if partial in key:
                    return self.defaults[partial]

        logger.debug(f"No category for app {app_id!r}, defaulting to utility")
        return AppCategory.UTILITY

    def set_override(self, app: str, category: AppCategory) -> None:
        self.overrides[normalize_app_key(app)] = AppCategory(category)

    def apps_in(self, category: AppCategory) -> List[str]:
        """Default app keys for a category (user overrides included)"""
        merged = dict(self.defaults)
        merged.update(self.overrides)
        return sorted(k for k, v in merged.items() if v == category)
