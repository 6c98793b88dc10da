"""
App category resolver tests
"""

from daytrace.models.segments import AppCategory
from daytrace.processing.app_categories import AppCategoryResolver, normalize_app_key


class TestAppCategoryResolver:
    """Lookup order: overrides, exact default, partial default, utility"""

    def setup_method(self):
        self.resolver = AppCategoryResolver()

    def test_exact_display_name_match(self):
        """Display names resolve case-insensitively"""
        assert self.resolver.resolve("com.tinyspeck.slackmacgap", "Slack") == AppCategory.WORK
        assert self.resolver.resolve("us.zoom.xos", "  ZOOM ") == AppCategory.COMMS
        assert self.resolver.resolve("com.burbn.instagram", "Instagram") == AppCategory.SOCIAL

    def test_app_id_used_when_display_name_unknown(self):
        """Bundle ids containing a known app name fall back to partial match"""
        assert self.resolver.resolve("com.netflix.Netflix", "") == AppCategory.ENTERTAINMENT

    def test_partial_match_prefers_longest_key(self):
        """'youtube music' wins over 'music' and 'youtube'"""
        assert self.resolver.resolve("app", "YouTube Music Premium") == AppCategory.ENTERTAINMENT
        assert self.resolver.resolve("app", "Google Calendar Beta") == AppCategory.WORK

    def test_short_keys_never_match_partially(self):
        """'x' and 'max' must not swallow unrelated names"""
        assert self.resolver.resolve("org.example.maxwell", "Maxwell Lab") == AppCategory.UTILITY

    def test_unknown_app_defaults_to_utility(self):
        assert self.resolver.resolve("com.example.unknown", "Totally Unknown") == AppCategory.UTILITY

    def test_ignore_category(self):
        assert self.resolver.resolve("com.apple.springboard", "SpringBoard") == AppCategory.IGNORE

    def test_overrides_win(self):
        """User overrides beat defaults"""
        resolver = AppCategoryResolver(overrides={"YouTube": AppCategory.WORK})
        assert resolver.resolve("com.google.ios.youtube", "YouTube") == AppCategory.WORK

    def test_set_override(self):
        self.resolver.set_override("Reddit", AppCategory.WORK)
        assert self.resolver.resolve("com.reddit.Reddit", "Reddit") == AppCategory.WORK
        assert "reddit" in self.resolver.apps_in(AppCategory.WORK)

    def test_apps_in_category(self):
        comms = self.resolver.apps_in(AppCategory.COMMS)
        assert "zoom" in comms
        assert "slack" not in comms


class TestNormalizeAppKey:
    def test_strips_and_lowercases(self):
        assert normalize_app_key("  Google Docs ") == "google docs"

    def test_none_is_empty(self):
        assert normalize_app_key(None) == ""
