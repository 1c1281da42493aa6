"""
foundling idea oracle — an MCP client for idea scoring.

The scoring service is an MCP tool server started as a subprocess and
spoken to over stdio. One tool is used:

    validate_idea {title, description, category, target_market?}
        → text content holding a JSON object with feasibilityScore,
          marketSize, competitionLevel, developmentComplexity, ...

The oracle is advisory. If it is not configured, times out, or returns
something unreadable, the deterministic FALLBACK assessment is used and
the idea is written anyway.

Config (env vars):
    FOUNDLING_ORACLE_COMMAND   command line that starts the MCP server,
                               e.g. "python -m scoring_server". Empty
                               disables the oracle.
    FOUNDLING_ORACLE_TIMEOUT   seconds to wait for a score (default 30)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shlex
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

logger = logging.getLogger(__name__)

TOOL_NAME = "validate_idea"


@dataclass(frozen=True)
class Assessment:
    feasibility_score:      int | float
    market_size:            str
    competition_level:      str
    development_complexity: str

    def to_dict(self) -> dict:
        return {
            "feasibilityScore":      self.feasibility_score,
            "marketSize":            self.market_size,
            "competitionLevel":      self.competition_level,
            "developmentComplexity": self.development_complexity,
        }


FALLBACK = Assessment(
    feasibility_score=65,
    market_size="Medium",
    competition_level="Medium",
    development_complexity="Moderate",
)


def normalize_assessment(raw: Mapping[str, Any]) -> Assessment:
    """Coerce an oracle reply into an Assessment, score clamped to 0–100."""
    score = raw.get("feasibilityScore")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or score != score:
        score = 50
    score = min(100, max(0, score))

    def label(key: str, default: str) -> str:
        value = raw.get(key)
        return value if isinstance(value, str) and value else default

    return Assessment(
        feasibility_score=score,
        market_size=label("marketSize", "Medium"),
        competition_level=label("competitionLevel", "Medium"),
        development_complexity=label("developmentComplexity", "Moderate"),
    )


class IdeaOracle:
    """Scores ideas through the validate_idea MCP tool."""

    def __init__(self, command: Optional[str] = None, *, timeout: float = 30.0):
        self.command = command or ""
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "IdeaOracle":
        return cls(
            os.environ.get("FOUNDLING_ORACLE_COMMAND", ""),
            timeout=float(os.environ.get("FOUNDLING_ORACLE_TIMEOUT", "30")),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.command.strip())

    async def validate(
        self,
        title: str,
        description: str,
        category: str,
        target_market: Optional[str] = None,
    ) -> Assessment:
        """Score an idea. Never raises; falls back instead."""
        if not self.enabled:
            return FALLBACK

        arguments = {"title": title, "description": description, "category": category}
        if target_market:
            arguments["target_market"] = target_market

        try:
            raw = await asyncio.wait_for(self._call(arguments), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Oracle timed out after {self.timeout}s; using fallback")
            return FALLBACK
        except Exception as e:
            logger.warning(f"Oracle call failed ({e!r}); using fallback")
            return FALLBACK

        if not isinstance(raw, Mapping):
            logger.warning(f"Oracle returned {type(raw).__name__}, not an object; using fallback")
            return FALLBACK
        return normalize_assessment(raw)

    async def _call(self, arguments: dict) -> Any:
        argv = shlex.split(self.command)
        params = StdioServerParameters(command=argv[0], args=argv[1:])
        async with stdio_client(params) as (read, write):
            async with ClientSession(read, write) as session:
                await session.initialize()
                result = await session.call_tool(TOOL_NAME, arguments)

        if result.isError:
            raise RuntimeError(f"{TOOL_NAME} reported an error")
        for content in result.content:
            if getattr(content, "type", None) == "text":
                return json.loads(content.text)
        raise ValueError(f"{TOOL_NAME} returned no text content")
