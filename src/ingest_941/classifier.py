"""
Request classification: user agent and IP address to visitor attributes.

Both lookups sit behind small protocols so alternate backends (another
user-agent library, another geo database) can be dropped in without
touching the pipeline.
"""

from dataclasses import dataclass
from typing import Protocol

from .geo import GeoInfo, NullLocator
from .user_agent import AgentInfo, RegexUserAgentParser


class UserAgentParser(Protocol):
    def parse(self, user_agent: str | None) -> AgentInfo: ...


class GeoLocator(Protocol):
    def locate(self, ip: str | None) -> GeoInfo: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class ClassificationResult:
    """Everything derived from the request metadata.

    Folded into the normalized record; never stored on its own.
    """
    browser: str | None = None
    os: str | None = None
    device_type: str | None = None
    is_bot: bool = False
    continent: str | None = None
    country: str | None = None
    city: str | None = None


class Classifier:
    """Pure, total classification of a request's user agent and IP."""

    def __init__(
        self,
        user_agent_parser: UserAgentParser | None = None,
        geo_locator: GeoLocator | None = None,
    ):
        self.user_agent_parser = user_agent_parser or RegexUserAgentParser()
        self.geo_locator = geo_locator or NullLocator()

    def close(self) -> None:
        """Release the geo database."""
        self.geo_locator.close()

    def parse_agent(self, user_agent: str | None) -> AgentInfo:
        """First pass: user agent only, enough for bot exclusion."""
        return self.user_agent_parser.parse(user_agent)

    def classify(
        self,
        user_agent: str | None,
        ip: str | None,
        agent: AgentInfo | None = None,
    ) -> ClassificationResult:
        """Full classification.

        Args:
            user_agent: Raw User-Agent string, if any
            ip: Client IP address, if any
            agent: Result of an earlier parse_agent() call to reuse
        """
        if agent is None:
            agent = self.parse_agent(user_agent)
        geo = self.geo_locator.locate(ip)

        return ClassificationResult(
            browser=agent.browser,
            os=agent.os,
            device_type=agent.device_type,
            is_bot=agent.is_bot,
            continent=geo.continent,
            country=geo.country,
            city=geo.city,
        )
