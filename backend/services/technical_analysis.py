"""
Technical analysis artifact retrieval.

An offline job writes JSON artifacts for each (date, symbol) under
daily/<date>/<symbol>/. Several versions of each artifact can exist side by
side; the producer encodes recency in the key text, so "latest" means the
greatest key under the configured ordering.

Flow: locate() picks the keys, load() downloads and parses each one,
assemble() builds the response payload.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from services.artifact_source import ArtifactError, ArtifactSource

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".json"
DEFAULT_PREFIX_ROOT = "daily"

# Sort key applied to candidate keys before taking the maximum.
KeyOrdering = Callable[[str], Any]


def lexicographic_order(key: str) -> str:
    """Plain string ordering. Assumes the producer zero-pads its timestamps."""
    return key


class ArtifactNotFound(ArtifactError):
    """Raised when there is nothing to serve for a symbol/date."""
    pass


class MalformedArtifact(ArtifactError):
    """Raised when a fetched artifact is not valid UTF-8 JSON."""

    def __init__(self, key: str, category: "ArtifactCategory", reason: str):
        self.key = key
        self.category = category
        self.reason = reason
        super().__init__(f"Malformed {category.value} artifact {key}: {reason}")


class ArtifactCategory(str, Enum):
    """Artifact category. The value is the marker the producer puts in the key."""
    SIGNALS = "signals"
    ANALYSIS = "gemini_analysis"

    @property
    def mandatory(self) -> bool:
        """A request fails with 404 when no key of a mandatory category exists."""
        return self is ArtifactCategory.SIGNALS

    @property
    def label(self) -> str:
        return "Signals" if self is ArtifactCategory.SIGNALS else "Analysis"

    def matches(self, key: str) -> bool:
        return self.value in key and key.endswith(ARTIFACT_SUFFIX)


def utc_today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


@dataclass(frozen=True)
class ArtifactQuery:
    """Symbol and ISO calendar date to retrieve artifacts for."""
    symbol: str
    date: str = field(default_factory=utc_today)

    @classmethod
    def from_params(
        cls,
        symbol: Optional[str],
        date: Optional[str],
        default_symbol: str,
    ) -> "ArtifactQuery":
        """Build a query, falling back to defaults for missing or blank values."""
        symbol = (symbol or "").strip() or default_symbol
        date = (date or "").strip() or utc_today()
        return cls(symbol=symbol, date=date)

    def prefix(self, root: str = DEFAULT_PREFIX_ROOT) -> str:
        if not root:
            return f"{self.date}/{self.symbol}"
        return f"{root}/{self.date}/{self.symbol}"


@dataclass(frozen=True)
class LocatedArtifacts:
    signals_key: str
    analysis_key: Optional[str] = None


@dataclass
class RetrievalResult:
    """Parsed artifacts for one request. Never cached."""
    technical_data: Any
    gemini_analysis: Any = None

    def to_payload(self) -> dict:
        # geminiAnalysis is always present, null when no analysis was located
        return {
            "technicalData": self.technical_data,
            "geminiAnalysis": self.gemini_analysis,
        }


def latest_key(keys: Iterable[str], ordering: KeyOrdering = lexicographic_order) -> Optional[str]:
    """Return the greatest key under ordering, or None for no keys."""
    return max(keys, key=ordering, default=None)


def partition_keys(keys: Iterable[str]) -> dict[ArtifactCategory, list[str]]:
    """Group keys by category. A key is tested against every category."""
    groups: dict[ArtifactCategory, list[str]] = {category: [] for category in ArtifactCategory}
    for key in keys:
        for category in ArtifactCategory:
            if category.matches(key):
                groups[category].append(key)
    return groups


def locate(
    source: ArtifactSource,
    query: ArtifactQuery,
    prefix_root: str = DEFAULT_PREFIX_ROOT,
    ordering: KeyOrdering = lexicographic_order,
) -> LocatedArtifacts:
    """
    Find the latest signals key and latest analysis key for a query.

    Raises:
        ArtifactNotFound: Nothing under the prefix, or no signals artifact
        StorageError: Listing failed
    """
    prefix = query.prefix(prefix_root)
    keys = source.list_keys(prefix)
    if not keys:
        raise ArtifactNotFound("No data found for this symbol and date")

    groups = partition_keys(keys)
    selected = {category: latest_key(candidates, ordering) for category, candidates in groups.items()}
    for category, key in selected.items():
        if key is None and category.mandatory:
            raise ArtifactNotFound(f"{category.label} file not found")

    signals_key = selected[ArtifactCategory.SIGNALS]
    analysis_key = selected[ArtifactCategory.ANALYSIS]

    logger.debug(
        "Located artifacts prefix=%s candidates=%d signals=%s analysis=%s",
        prefix,
        len(keys),
        signals_key,
        analysis_key,
    )
    return LocatedArtifacts(signals_key=signals_key, analysis_key=analysis_key)


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON; the response encoder would turn them into null.
    raise ValueError(f"non-standard JSON constant {name}")


def load(source: ArtifactSource, key: str, category: ArtifactCategory) -> Any:
    """
    Download and parse one artifact. The payload is returned as-is.

    Raises:
        StorageError: Fetch failed
        MalformedArtifact: Bytes are not UTF-8 JSON, or use NaN/Infinity
    """
    raw = source.fetch(key)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedArtifact(key, category, f"not UTF-8 ({e.reason})") from e
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise MalformedArtifact(key, category, f"{e.msg} at line {e.lineno} column {e.colno}") from e
    except ValueError as e:
        raise MalformedArtifact(key, category, str(e)) from e


def assemble(technical_data: Any, gemini_analysis: Any = None) -> RetrievalResult:
    return RetrievalResult(technical_data=technical_data, gemini_analysis=gemini_analysis)


class TechnicalAnalysisService:
    """
    Retrieves the latest artifacts for a symbol and date.

    Holds no per-request state, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        source: ArtifactSource,
        prefix_root: str = DEFAULT_PREFIX_ROOT,
        ordering: KeyOrdering = lexicographic_order,
    ):
        self.source = source
        self.prefix_root = prefix_root
        self.ordering = ordering

    def locate(self, query: ArtifactQuery) -> LocatedArtifacts:
        return locate(self.source, query, prefix_root=self.prefix_root, ordering=self.ordering)

    def fetch(self, query: ArtifactQuery) -> RetrievalResult:
        """
        Locate, load and assemble the artifacts for a query.

        A located analysis artifact that fails to load fails the whole
        request; only an analysis artifact that was never located becomes null.
        """
        located = self.locate(query)
        technical_data = load(self.source, located.signals_key, ArtifactCategory.SIGNALS)

        gemini_analysis = None
        if located.analysis_key is not None:
            gemini_analysis = load(self.source, located.analysis_key, ArtifactCategory.ANALYSIS)

        logger.info(
            "Retrieved technical analysis symbol=%s date=%s source=%s analysis=%s",
            query.symbol,
            query.date,
            self.source.name,
            "yes" if located.analysis_key else "no",
            extra={"symbol": query.symbol, "date": query.date, "source": self.source.name},
        )
        return assemble(technical_data, gemini_analysis)
