"""Deeplink resolution: pick one destination URL for a visitor."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple
from urllib.parse import urlparse

from linkhub.services.user_agent import ParsedUserAgent, parse_user_agent

# URL schemes that open a native app directly instead of a web page
APP_SCHEMES = (
    "instagram://",
    "twitter://",
    "tiktok://",
    "spotify://",
    "youtube://",
    "whatsapp://",
    "telegram://",
    "discord://",
    "slack://",
    "mailto:",
    "tel:",
    "sms:",
)


class UserAgentRule(NamedTuple):
    """Custom override: redirect to ``url`` when ``pattern`` occurs in the UA."""

    pattern: str
    url: str

    def matches(self, user_agent: str) -> bool:
        """Case-insensitive substring match. Blank patterns never match."""
        pattern = self.pattern.strip().lower()
        return bool(pattern) and pattern in user_agent.lower()


@dataclass(frozen=True)
class DeeplinkConfig:
    """Destinations of a deeplink.

    ``original_url`` is always present; every other target is optional and
    simply skipped during resolution when missing.
    """

    original_url: str
    ios_url: str | None = None
    android_url: str | None = None
    desktop_url: str | None = None
    fallback_url: str | None = None
    user_agent_rules: tuple[UserAgentRule, ...] = ()


def rules_from_json(raw: Any) -> tuple[UserAgentRule, ...]:
    """Build ordered rules from their stored JSON form.

    Accepts the canonical list of ``[pattern, url]`` pairs as well as a
    ``{pattern: url}`` object, whose key order is preserved.
    """
    if not raw:
        return ()
    pairs: Iterable[Any] = raw.items() if isinstance(raw, Mapping) else raw
    rules = []
    for pair in pairs:
        if isinstance(pair, Mapping):
            pattern, url = pair.get("pattern"), pair.get("url")
        else:
            pattern, url = pair
        if pattern and url:
            rules.append(UserAgentRule(str(pattern), str(url)))
    return tuple(rules)


def rules_to_json(rules: Iterable[UserAgentRule]) -> list[list[str]] | None:
    """Serialize rules as a list of ``[pattern, url]`` pairs (None when empty)."""
    pairs = [[rule.pattern, rule.url] for rule in rules]
    return pairs or None


def resolve(config: DeeplinkConfig, user_agent: str) -> str:
    """Return the destination for ``user_agent``.

    Precedence, first match wins:
    1. custom user-agent rules, in order
    2. iOS target for iOS devices
    3. Android target for Android devices
    4. desktop target for desktop devices
    5. fallback URL, then the original URL

    Never raises; a config with only ``original_url`` always resolves to it.
    """
    user_agent = user_agent or ""

    for rule in config.user_agent_rules:
        if rule.matches(user_agent):
            return rule.url

    device = parse_user_agent(user_agent)
    platform_url = _platform_url(config, device)
    if platform_url:
        return platform_url

    return config.fallback_url or config.original_url


def _platform_url(config: DeeplinkConfig, device: ParsedUserAgent) -> str | None:
    if device.is_ios and config.ios_url:
        return config.ios_url
    if device.is_android and config.android_url:
        return config.android_url
    if device.is_desktop and config.desktop_url:
        return config.desktop_url
    return None


def is_app_deep_link(url: str) -> bool:
    """Check if URL opens a native app (``instagram://``, ``mailto:``...)."""
    return url.lower().startswith(APP_SCHEMES)


def format_url(url: str) -> str:
    """Trim and add ``https://`` to bare domains.

    URLs that already carry a scheme (``ftp://...``, ``instagram://...``) are
    returned unchanged and left for ``is_valid_url`` to judge.
    """
    trimmed = (url or "").strip()
    if not trimmed or is_app_deep_link(trimmed) or "://" in trimmed:
        return trimmed
    return f"https://{trimmed}"


def is_valid_url(url: str) -> bool:
    """Check that URL is an http(s) URL with a host, or an app deep link."""
    if not url:
        return False
    if is_app_deep_link(url):
        return True
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    # Nested schemes like https://ftp://host end up in the path
    if parsed.path.startswith("//"):
        return False
    try:
        parsed.port
    except ValueError:
        return False
    return True
