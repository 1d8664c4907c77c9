"""
User-Agent parsing for browser, OS and device detection.

User-Agents are notoriously messy (Chrome claims to be Mozilla, Safari,
and Chrome all at once), so patterns are ordered: specific browsers are
checked before the engines they are built on (Edge before Chrome, Chrome
before Safari).

Bots are a device type here. A user agent recognized by `bots.detect_bot`
gets device type "bot", which is what the privacy filter checks when a
site excludes bot traffic.

Only the browser family and OS name are kept, never versions or device
identifiers.
"""

import re
from dataclasses import dataclass
from enum import Enum

from .bots import detect_bot
from .models import MAX_AGENT_FIELD_LENGTH


class DeviceType(str, Enum):
    """Device category."""
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    TV = "tv"
    BOT = "bot"


@dataclass(frozen=True)
class AgentInfo:
    """
    Parsed user-agent information.

    Any field the parser could not determine is None.
    """
    browser: str | None = None
    os: str | None = None
    device_type: str | None = None

    @property
    def is_bot(self) -> bool:
        return self.device_type == DeviceType.BOT.value


# =============================================================================
# BROWSER DETECTION PATTERNS
# =============================================================================
# Order matters! Check specific browsers before generic ones.

BROWSER_PATTERNS = [
    # Chromium-based browsers (before Chrome)
    (r"Edg(?:e|A|iOS)?/\d+", "Edge"),
    (r"OPR/\d+", "Opera"),
    (r"Opera", "Opera"),
    (r"Vivaldi/\d+", "Vivaldi"),
    (r"Brave/\d+", "Brave"),
    (r"SamsungBrowser/\d+", "Samsung Internet"),
    (r"UCBrowser/\d+", "UC Browser"),
    (r"YaBrowser/\d+", "Yandex"),
    (r"DuckDuckGo/\d+", "DuckDuckGo"),

    # Firefox variants
    (r"Firefox/\d+", "Firefox"),
    (r"FxiOS/\d+", "Firefox"),

    # Chrome variants
    (r"CriOS/\d+", "Chrome"),
    (r"Chromium/\d+", "Chromium"),
    (r"Chrome/\d+", "Chrome"),

    # Safari (after Chrome, which also says Safari)
    (r"Version/\d+.*Safari", "Safari"),
    (r"Safari/\d+", "Safari"),

    # Legacy
    (r"MSIE \d+", "Internet Explorer"),
    (r"Trident/.*rv:\d+", "Internet Explorer"),

    # In-app WebViews
    (r"Instagram", "Instagram"),
    (r"FBAN|FBAV", "Facebook"),
]

# =============================================================================
# OS DETECTION PATTERNS
# =============================================================================

OS_PATTERNS = [
    (r"iPhone|iPod", "iOS"),
    (r"iPad", "iPadOS"),
    (r"Windows Phone", "Windows Phone"),  # before Android, WP10 claims Android
    (r"Android", "Android"),  # before Linux, Android UAs contain Linux
    (r"Windows", "Windows"),
    (r"Macintosh|Mac OS X", "macOS"),
    (r"CrOS", "Chrome OS"),
    (r"Ubuntu", "Ubuntu"),
    (r"Fedora", "Fedora"),
    (r"Linux", "Linux"),
    (r"FreeBSD", "FreeBSD"),
    (r"PlayStation", "PlayStation"),
    (r"Xbox", "Xbox"),
]

# =============================================================================
# DEVICE TYPE DETECTION
# =============================================================================

TV_INDICATORS = [
    r"SmartTV", r"Smart-TV", r"Web0S", r"NetCast", r"Tizen.*TV", r"Roku",
    r"BRAVIA", r"AppleTV", r"tvOS", r"CrKey", r"PlayStation", r"Xbox",
]

TABLET_INDICATORS = [
    r"iPad", r"Android(?!.*Mobile)", r"Tablet", r"Kindle", r"Silk/", r"PlayBook",
]

MOBILE_INDICATORS = [
    r"Mobile", r"iPhone", r"iPod", r"BlackBerry", r"IEMobile",
    r"Opera Mini", r"Opera Mobi", r"Windows Phone",
]

_DESKTOP_HINTS = ("Windows", "Macintosh", "X11", "CrOS", "Linux")


def _first_match(patterns, ua: str) -> str | None:
    for pattern, name in patterns:
        if re.search(pattern, ua, re.IGNORECASE):
            return name
    return None


def _detect_device_type(ua: str) -> DeviceType | None:
    """Detect device type from user-agent string."""
    # TVs first: some include "Mobile"
    for pattern in TV_INDICATORS:
        if re.search(pattern, ua, re.IGNORECASE):
            return DeviceType.TV

    # Tablets before mobile: iPads say "Mobile" too
    for pattern in TABLET_INDICATORS:
        if re.search(pattern, ua, re.IGNORECASE):
            return DeviceType.TABLET

    for pattern in MOBILE_INDICATORS:
        if re.search(pattern, ua, re.IGNORECASE):
            return DeviceType.MOBILE

    if any(hint in ua for hint in _DESKTOP_HINTS):
        return DeviceType.DESKTOP

    return None


def _clip(value: str | None) -> str | None:
    return value[:MAX_AGENT_FIELD_LENGTH] if value else None


def parse_user_agent(user_agent: str | None) -> AgentInfo:
    """
    Parse a user-agent string into browser, OS and device type.

    Never raises; unparseable input gives an empty AgentInfo.

    Examples:
        >>> parse_user_agent("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36")
        AgentInfo(browser='Chrome', os='macOS', device_type='desktop')

        >>> parse_user_agent("Mozilla/5.0 (compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)").is_bot
        True
    """
    if not user_agent or not user_agent.strip():
        return AgentInfo()

    browser = _first_match(BROWSER_PATTERNS, user_agent)
    os_name = _first_match(OS_PATTERNS, user_agent)

    if detect_bot(user_agent):
        device = DeviceType.BOT
    else:
        device = _detect_device_type(user_agent)

    return AgentInfo(
        browser=_clip(browser),
        os=_clip(os_name),
        device_type=_clip(device.value) if device else None,
    )


class RegexUserAgentParser:
    """Default user-agent backend built on the pattern tables above."""

    def parse(self, user_agent: str | None) -> AgentInfo:
        return parse_user_agent(user_agent)
