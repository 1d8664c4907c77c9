"""Tests for bot detection, user-agent parsing, geolocation and the classifier."""

from types import SimpleNamespace

from conftest import CHROME_UA, GOOGLEBOT_UA, IPHONE_UA
from ingest_941.bots import BotCategory, detect_bot, is_bot
from ingest_941.classifier import Classifier, ClassificationResult
from ingest_941.geo import EMPTY_GEO, GeoInfo, GeoIP2Locator, NullLocator, create_locator, format_geo
from ingest_941.user_agent import AgentInfo, parse_user_agent


class TestBotDetection:
    """Test bot detection from user-agents."""

    def test_googlebot_detected(self):
        info = detect_bot(GOOGLEBOT_UA)
        assert info is not None
        assert info.name == "Google"
        assert info.category == BotCategory.SEARCH_ENGINE

    def test_bingbot_detected(self):
        ua = "Mozilla/5.0 (compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)"
        info = detect_bot(ua)
        assert info.name == "Bing"
        assert info.category == BotCategory.SEARCH_ENGINE

    def test_gptbot_detected(self):
        ua = "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko; compatible; GPTBot/1.0; +https://openai.com/gptbot)"
        info = detect_bot(ua)
        assert info.name == "OpenAI GPT"
        assert info.category == BotCategory.AI_CRAWLER

    def test_curl_detected(self):
        info = detect_bot("curl/7.88.1")
        assert info.name == "cURL"
        assert info.category == BotCategory.LIBRARY

    def test_semrush_detected(self):
        ua = "Mozilla/5.0 (compatible; SemrushBot/7~bl; +http://www.semrush.com/bot.html)"
        info = detect_bot(ua)
        assert info.name == "SEMrush"
        assert info.category == BotCategory.SEO_TOOL

    def test_generic_bot_pattern(self):
        info = detect_bot("Mozilla/5.0 (compatible; AcmeBot/1.0)")
        assert info.category == BotCategory.UNKNOWN
        assert info.confidence < 1.0

    def test_browsers_not_bots(self):
        assert detect_bot(CHROME_UA) is None
        assert detect_bot(IPHONE_UA) is None
        assert is_bot(CHROME_UA) is False

    def test_empty_ua_not_classified(self):
        assert detect_bot("") is None
        assert detect_bot(None) is None
        assert detect_bot("   ") is None


class TestUserAgentParsing:
    """Test browser/OS/device extraction."""

    def test_chrome_on_mac(self):
        info = parse_user_agent(CHROME_UA)
        assert info == AgentInfo(browser="Chrome", os="macOS", device_type="desktop")
        assert info.is_bot is False

    def test_safari_on_iphone(self):
        info = parse_user_agent(IPHONE_UA)
        assert info.browser == "Safari"
        assert info.os == "iOS"
        assert info.device_type == "mobile"

    def test_firefox_on_windows(self):
        ua = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
        info = parse_user_agent(ua)
        assert info.browser == "Firefox"
        assert info.os == "Windows"
        assert info.device_type == "desktop"

    def test_edge_before_chrome(self):
        ua = CHROME_UA + " Edg/120.0.0.0"
        assert parse_user_agent(ua).browser == "Edge"

    def test_android_phone_is_mobile(self):
        ua = (
            "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
        )
        info = parse_user_agent(ua)
        assert info.os == "Android"
        assert info.device_type == "mobile"

    def test_android_without_mobile_is_tablet(self):
        ua = (
            "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )
        assert parse_user_agent(ua).device_type == "tablet"

    def test_bot_is_device_type(self):
        info = parse_user_agent(GOOGLEBOT_UA)
        assert info.device_type == "bot"
        assert info.is_bot is True

    def test_empty_and_garbage_input(self):
        assert parse_user_agent(None) == AgentInfo()
        assert parse_user_agent("") == AgentInfo()
        info = parse_user_agent("???")
        assert info.browser is None
        assert info.os is None
        assert info.device_type is None


def _geo_response(continent=("EU", "Europe"), country=("DE", "Germany"), city="Berlin", subdivision="BE"):
    return SimpleNamespace(
        continent=SimpleNamespace(code=continent[0], name=continent[1]),
        country=SimpleNamespace(iso_code=country[0], name=country[1]),
        city=SimpleNamespace(name=city),
        subdivisions=SimpleNamespace(most_specific=SimpleNamespace(iso_code=subdivision)),
    )


class TestGeolocation:
    """Test geo formatting and failure handling."""

    def test_format_full_response(self):
        geo = format_geo(_geo_response())
        assert geo.continent == "EU:Europe"
        assert geo.country == "DE:Germany"
        assert geo.city == "DE: Berlin, BE"

    def test_format_without_subdivision(self):
        geo = format_geo(_geo_response(subdivision=None))
        assert geo.city == "DE: Berlin"

    def test_format_without_city(self):
        geo = format_geo(_geo_response(city=None))
        assert geo.country == "DE:Germany"
        assert geo.city is None

    def test_missing_database_returns_empty(self, tmp_path):
        locator = GeoIP2Locator(str(tmp_path / "missing.mmdb"))
        assert locator.locate("8.8.8.8") == EMPTY_GEO
        # Stays disabled, no retry per request
        assert locator.locate("1.1.1.1") == EMPTY_GEO

    def test_corrupt_database_returns_empty(self, tmp_path):
        db = tmp_path / "corrupt.mmdb"
        db.write_bytes(b"not a maxmind database")
        locator = GeoIP2Locator(str(db))
        assert locator.locate("8.8.8.8") == EMPTY_GEO

    def test_no_ip_returns_empty(self, tmp_path):
        locator = GeoIP2Locator(str(tmp_path / "missing.mmdb"))
        assert locator.locate(None) == EMPTY_GEO

    def test_create_locator(self, tmp_path):
        assert isinstance(create_locator(None), NullLocator)
        assert isinstance(create_locator(str(tmp_path / "x.mmdb")), GeoIP2Locator)


class FakeLocator:
    def __init__(self, geo: GeoInfo):
        self.geo = geo
        self.calls = []

    def locate(self, ip):
        self.calls.append(ip)
        return self.geo


class TestClassifier:
    """Test the combined classifier."""

    def test_combines_agent_and_geo(self):
        locator = FakeLocator(GeoInfo(continent="EU:Europe", country="DE:Germany", city="DE: Berlin, BE"))
        result = Classifier(geo_locator=locator).classify(CHROME_UA, "203.0.113.5")

        assert result == ClassificationResult(
            browser="Chrome",
            os="macOS",
            device_type="desktop",
            is_bot=False,
            continent="EU:Europe",
            country="DE:Germany",
            city="DE: Berlin, BE",
        )
        assert locator.calls == ["203.0.113.5"]

    def test_bot_flag(self):
        result = Classifier().classify(GOOGLEBOT_UA, None)
        assert result.is_bot is True
        assert result.device_type == "bot"

    def test_nothing_supplied(self):
        result = Classifier().classify(None, None)
        assert result == ClassificationResult()

    def test_reuses_parsed_agent(self):
        class CountingParser:
            calls = 0

            def parse(self, user_agent):
                CountingParser.calls += 1
                return AgentInfo(browser="Custom")

        classifier = Classifier(user_agent_parser=CountingParser())
        agent = classifier.parse_agent("anything")
        result = classifier.classify("anything", None, agent=agent)

        assert result.browser == "Custom"
        assert CountingParser.calls == 1
