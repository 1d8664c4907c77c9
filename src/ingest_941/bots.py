"""
Bot and crawler detection.

Sites that enable "exclude bots" reject any request whose user agent is
classified here as automated traffic. Detection runs in two passes:

1. Known crawlers, grouped by category, matched as lowercase substrings.
2. Generic conventions ("bot", "crawler", "spider", an embedded URL)
   for crawlers that are not listed yet.

Only non-empty user agents are classified. A request without a user agent
is not treated as a bot; there is simply nothing to classify.
"""

import re
from dataclasses import dataclass
from enum import Enum


class BotCategory(str, Enum):
    """Categories of automated traffic."""

    SEARCH_ENGINE = "search_engine"
    AI_CRAWLER = "ai_crawler"
    SEO_TOOL = "seo_tool"
    SOCIAL_PREVIEW = "social_preview"
    MONITORING = "monitoring"
    HEADLESS = "headless"
    LIBRARY = "library"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class BotMatch:
    """A positive bot classification."""

    name: str
    category: BotCategory
    confidence: float = 1.0


# Each entry: lowercase substring -> display name
KNOWN_BOTS: list[tuple[BotCategory, dict[str, str]]] = [
    (BotCategory.SEARCH_ENGINE, {
        "googlebot": "Google",
        "google-inspectiontool": "Google Search Console",
        "adsbot-google": "Google Ads",
        "mediapartners-google": "Google AdSense",
        "bingbot": "Bing",
        "bingpreview": "Bing Preview",
        "msnbot": "MSN/Bing",
        "yandexbot": "Yandex",
        "duckduckbot": "DuckDuckGo",
        "baiduspider": "Baidu",
        "applebot": "Apple",
        "petalbot": "Huawei Petal",
        "seznambot": "Seznam",
        "yahoo! slurp": "Yahoo",
    }),
    (BotCategory.SOCIAL_PREVIEW, {
        "facebookexternalhit": "Facebook",
        "meta-externalagent": "Meta",
        "twitterbot": "Twitter",
        "linkedinbot": "LinkedIn",
        "pinterestbot": "Pinterest",
        "slackbot": "Slack",
        "telegrambot": "Telegram",
        "whatsapp": "WhatsApp",
        "discordbot": "Discord",
        "redditbot": "Reddit",
        "embedly": "Embedly",
    }),
    (BotCategory.AI_CRAWLER, {
        "gptbot": "OpenAI GPT",
        "chatgpt-user": "ChatGPT",
        "oai-searchbot": "OpenAI Search",
        "claudebot": "Claude",
        "anthropic-ai": "Anthropic",
        "perplexitybot": "Perplexity",
        "bytespider": "ByteDance AI",
        "amazonbot": "Amazon",
        "ccbot": "Common Crawl",
        "cohere-ai": "Cohere",
        "diffbot": "Diffbot",
    }),
    (BotCategory.SEO_TOOL, {
        "ahrefsbot": "Ahrefs",
        "semrushbot": "SEMrush",
        "mj12bot": "Majestic",
        "dotbot": "Moz",
        "rogerbot": "Moz",
        "screaming frog": "Screaming Frog",
        "blexbot": "Webmeup",
        "dataforseobot": "DataForSEO",
        "serpstatbot": "Serpstat",
    }),
    (BotCategory.MONITORING, {
        "uptimerobot": "UptimeRobot",
        "pingdom": "Pingdom",
        "statuscake": "StatusCake",
        "site24x7": "Site24x7",
        "newrelicpinger": "New Relic",
        "datadog": "Datadog",
        "gtmetrix": "GTmetrix",
        "chrome-lighthouse": "Lighthouse",
    }),
    (BotCategory.HEADLESS, {
        "headlesschrome": "Headless Chrome",
        "phantomjs": "PhantomJS",
        "selenium": "Selenium",
        "puppeteer": "Puppeteer",
        "playwright": "Playwright",
        "prerender": "Prerender",
    }),
    (BotCategory.LIBRARY, {
        "curl/": "cURL",
        "wget/": "Wget",
        "python-requests": "Python Requests",
        "python-urllib": "Python urllib",
        "python-httpx": "Python httpx",
        "aiohttp": "Python aiohttp",
        "go-http-client": "Go HTTP",
        "okhttp": "OkHttp",
        "apache-httpclient": "Apache HttpClient",
        "node-fetch": "Node.js fetch",
        "axios/": "Axios",
        "libwww-perl": "Perl LWP",
        "guzzlehttp": "Guzzle",
    }),
]

GENERIC_BOT_PATTERNS = [
    r"bot\b",
    r"\bcrawl",
    r"\bspider\b",
    r"\bscrape",
    r"\bslurp",
    r"https?://",  # bots usually link their docs
]

_GENERIC_BOT_REGEX = re.compile("|".join(GENERIC_BOT_PATTERNS), re.IGNORECASE)


def detect_bot(user_agent: str | None) -> BotMatch | None:
    """
    Classify a user-agent string as automated traffic.

    Returns None for regular browsers and for empty input.

    Examples:
        >>> detect_bot("Mozilla/5.0 (compatible; Googlebot/2.1)")
        BotMatch(name='Google', category=<BotCategory.SEARCH_ENGINE: 'search_engine'>, confidence=1.0)

        >>> detect_bot("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)") is None
        True
    """
    if not user_agent or not user_agent.strip():
        return None

    ua_lower = user_agent.lower()

    for category, patterns in KNOWN_BOTS:
        for pattern, name in patterns.items():
            if pattern in ua_lower:
                return BotMatch(name=name, category=category)

    if _GENERIC_BOT_REGEX.search(ua_lower):
        return BotMatch(name="Unknown Bot", category=BotCategory.UNKNOWN, confidence=0.7)

    return None


def is_bot(user_agent: str | None) -> bool:
    """Quick check if user-agent is a bot."""
    return detect_bot(user_agent) is not None
