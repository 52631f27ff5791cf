"""User-Agent classification for device-aware redirects."""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from user_agents import parse as parse_ua
from user_agents.parsers import UserAgent

# OS families reported by ua-parser for Apple mobile devices
IOS_FAMILIES = frozenset({"iOS", "iPadOS"})
ANDROID_FAMILIES = frozenset({"Android"})


class DeviceClass(str, Enum):
    """Coarse device categories derived from a User-Agent string."""

    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ParsedUserAgent:
    """Classification of a visitor's User-Agent.

    Only ``device_class`` and the family names are stored; the platform
    flags are derived from them so they can never disagree.
    """

    device_class: DeviceClass
    os_family: str
    browser_family: str

    @property
    def is_ios(self) -> bool:
        return self.os_family in IOS_FAMILIES

    @property
    def is_android(self) -> bool:
        return self.os_family in ANDROID_FAMILIES

    @property
    def is_mobile(self) -> bool:
        """Handheld device (phones and tablets)."""
        return self.device_class in (DeviceClass.MOBILE, DeviceClass.TABLET)

    @property
    def is_desktop(self) -> bool:
        return self.device_class is DeviceClass.DESKTOP


def _classify_device(user_agent: UserAgent) -> DeviceClass:
    # Tablets first: user-agents reports Android tablets as non-mobile already,
    # but iPads can look like both.
    if user_agent.is_tablet:
        return DeviceClass.TABLET
    if user_agent.is_mobile:
        return DeviceClass.MOBILE
    if user_agent.is_pc:
        return DeviceClass.DESKTOP
    return DeviceClass.UNKNOWN


@lru_cache(maxsize=2048)
def parse_user_agent(raw_user_agent: str) -> ParsedUserAgent:
    """Parse a raw User-Agent header into a ``ParsedUserAgent``.

    Pure function of its input. Anything the parser cannot place (bots,
    empty strings, unknown clients) is classified as ``DeviceClass.UNKNOWN``
    instead of being guessed as a desktop.
    """
    user_agent = parse_ua(raw_user_agent or "")
    return ParsedUserAgent(
        device_class=_classify_device(user_agent),
        os_family=user_agent.os.family or "Other",
        browser_family=user_agent.browser.family or "Other",
    )
