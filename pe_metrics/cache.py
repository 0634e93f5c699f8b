"""
cache.py — Memo tables for computed metrics and derived views.

Four independent tiers share one :class:`DataVersion` logical clock:

    per-fund       (fund_id, cutoff)                    version + TTL, FIFO-bounded
    consolidated   (fund_name, cutoff, hash(ids))       version only
    filter result  hash(selections) + cutoff            version only, single slot
    group tree     (hash(fund ids), hash(expanded ids)) version only, single slot

The host bumps the clock once per mutation. Entries written under an older
version are never served; they are ignored on lookup and overwritten or
evicted later. ``clear_all`` empties every tier outright.

Hashes only shorten keys: each entry also keeps the canonical structure it
was computed for and a lookup compares it, so a collision is a miss.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Callable, Generic, Hashable, Iterable, Mapping, Optional, TypeVar

from pe_metrics.config import MAX_METRICS_CACHE_SIZE, METRICS_CACHE_TTL
from pe_metrics.dates import DateLike, cutoff_key
from pe_metrics.fund import parse_id

logger = logging.getLogger(__name__)

V = TypeVar("V")

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
_MASK_32 = 0xFFFFFFFF
_SEPARATOR = 0x1F  # unit separator between hashed tokens
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _fnv1a(values: Iterable[int], seed: int = FNV_OFFSET_BASIS) -> int:
    h = seed
    for value in values:
        h ^= value & _MASK_32
        h = (h * FNV_PRIME) & _MASK_32
    return h


def hash_ids(ids: Iterable[int]) -> str:
    """32-bit FNV-1a over the sorted ids, base 36. Order-insensitive."""
    return _to_base36(_fnv1a(sorted(ids)))


def canonical_filter_state(
    selections: Mapping[str, Iterable[str]],
) -> tuple[tuple[str, tuple[str, ...]], ...]:
    """Sorted keys with sorted values; empty selections are dropped."""
    return tuple(
        (key, tuple(sorted(values)))
        for key, values in sorted((k, list(v)) for k, v in selections.items())
        if values
    )


def hash_filter_state(selections: Mapping[str, Iterable[str]]) -> str:
    """32-bit FNV-1a over the characters of the canonical filter state."""
    h = FNV_OFFSET_BASIS
    for key, values in canonical_filter_state(selections):
        h = _fnv1a((ord(c) for c in key), h)
        h = _fnv1a([_SEPARATOR], h)
        for value in values:
            h = _fnv1a((ord(c) for c in value), h)
            h = _fnv1a([_SEPARATOR], h)
    return _to_base36(h)


def _int_ids(ids: Iterable[Any]) -> tuple[int, ...]:
    """Sorted integer ids; numeric strings are converted, anything else dropped."""
    return tuple(sorted(i for i in map(parse_id, ids) if i is not None))


# ---------------------------------------------------------------------------
# Clock, entries, statistics
# ---------------------------------------------------------------------------

class DataVersion:
    """Monotonically increasing counter bumped once per external mutation."""

    def __init__(self) -> None:
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def bump(self) -> int:
        self._value += 1
        return self._value

    def __repr__(self) -> str:
        return f"DataVersion({self._value})"


@dataclass
class CacheEntry(Generic[V]):
    value: V
    written_at_version: int
    created_at: float
    fingerprint: Hashable = None


@dataclass
class CacheStats:
    """Lookup counters for one tier."""

    hits: int = 0
    misses: int = 0
    stale: int = 0  # misses caused by a version or TTL mismatch
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data


class _Tier(ABC):
    """Shared plumbing: version gate and statistics."""

    name = "tier"

    def __init__(
        self,
        version: DataVersion,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._version = version
        self._clock = clock
        self.stats = CacheStats()

    def _entry(self, value: Any, fingerprint: Hashable = None) -> CacheEntry:
        return CacheEntry(
            value=value,
            written_at_version=self._version.value,
            created_at=self._clock(),
            fingerprint=fingerprint,
        )

    def _is_current(self, entry: CacheEntry) -> bool:
        return entry.written_at_version == self._version.value

    def _hit(self, value: V) -> V:
        self.stats.hits += 1
        return value

    def _miss(self, stale: bool = False) -> None:
        self.stats.misses += 1
        if stale:
            self.stats.stale += 1
        return None

    @abstractmethod
    def clear(self) -> None:
        """Drop every entry outright."""


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------

class FundMetricsCache(_Tier, Generic[V]):
    """
    Per-fund tier keyed by ``(fund_id, cutoff)``.

    An entry is served while the data version is unchanged and it is
    younger than ``ttl`` seconds. At ``max_size`` the oldest insertion is
    evicted (dicts keep insertion order, so this is O(1)).
    """

    name = "fund_metrics"

    def __init__(
        self,
        version: DataVersion,
        ttl: float = METRICS_CACHE_TTL,
        max_size: int = MAX_METRICS_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(version, clock)
        self.ttl = ttl
        self.max_size = max_size
        self._entries: dict[tuple[int, str], CacheEntry[V]] = {}

    @staticmethod
    def make_key(fund_id: int, cutoff: Optional[DateLike] = None) -> tuple[int, str]:
        return (fund_id, cutoff_key(cutoff))

    def get(self, fund_id: int, cutoff: Optional[DateLike] = None) -> Optional[V]:
        entry = self._entries.get(self.make_key(fund_id, cutoff))
        if entry is None:
            return self._miss()
        if not self._is_current(entry) or self._clock() - entry.created_at >= self.ttl:
            return self._miss(stale=True)
        return self._hit(entry.value)

    def set(self, fund_id: int, cutoff: Optional[DateLike], value: V) -> None:
        key = self.make_key(fund_id, cutoff)
        # a rewritten key counts as the newest insertion
        if self._entries.pop(key, None) is None and len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            self.stats.evictions += 1
        self._entries[key] = self._entry(value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class ConsolidatedMetricsCache(_Tier, Generic[V]):
    """Tier keyed by ``(fund_name, cutoff, hash(sorted constituent ids))``."""

    name = "consolidated"

    def __init__(self, version: DataVersion, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__(version, clock)
        self._entries: dict[tuple[str, str, str], CacheEntry[V]] = {}

    @staticmethod
    def make_key(
        fund_name: str,
        cutoff: Optional[DateLike],
        fund_ids: Iterable[int],
    ) -> tuple[str, str, str]:
        return (fund_name, cutoff_key(cutoff), hash_ids(fund_ids))

    def get(
        self,
        fund_name: str,
        cutoff: Optional[DateLike],
        fund_ids: Iterable[int],
    ) -> Optional[V]:
        fund_ids = tuple(sorted(fund_ids))
        entry = self._entries.get(self.make_key(fund_name, cutoff, fund_ids))
        if entry is None:
            return self._miss()
        if not self._is_current(entry):
            return self._miss(stale=True)
        if entry.fingerprint != fund_ids:
            logger.debug("Constituent hash collision for %r", fund_name)
            return self._miss()
        return self._hit(entry.value)

    def set(
        self,
        fund_name: str,
        cutoff: Optional[DateLike],
        fund_ids: Iterable[int],
        value: V,
    ) -> None:
        fund_ids = tuple(sorted(fund_ids))
        self._entries[self.make_key(fund_name, cutoff, fund_ids)] = self._entry(
            value, fingerprint=fund_ids
        )

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FilterResultCache(_Tier):
    """Single-slot tier holding the fund ids matching the current filters."""

    name = "filter_results"

    def __init__(self, version: DataVersion, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__(version, clock)
        self._key: Optional[str] = None
        self._slot: Optional[CacheEntry[list[int]]] = None

    @staticmethod
    def make_key(selections: Mapping[str, Iterable[str]], cutoff: Optional[DateLike]) -> str:
        return f"{hash_filter_state(selections)}-{cutoff_key(cutoff)}"

    def get(
        self,
        selections: Mapping[str, Iterable[str]],
        cutoff: Optional[DateLike] = None,
    ) -> Optional[list[int]]:
        if self._slot is None:
            return self._miss()
        if not self._is_current(self._slot):
            return self._miss(stale=True)
        fingerprint = (canonical_filter_state(selections), cutoff_key(cutoff))
        if self._key != self.make_key(selections, cutoff) or self._slot.fingerprint != fingerprint:
            return self._miss()
        return self._hit(list(self._slot.value))

    def set(
        self,
        selections: Mapping[str, Iterable[str]],
        cutoff: Optional[DateLike],
        fund_ids: Iterable[int],
    ) -> None:
        self._key = self.make_key(selections, cutoff)
        self._slot = self._entry(
            list(fund_ids),
            fingerprint=(canonical_filter_state(selections), cutoff_key(cutoff)),
        )

    def clear(self) -> None:
        self._key = None
        self._slot = None

    def __len__(self) -> int:
        return 0 if self._slot is None else 1


class GroupTreeCache(_Tier):
    """
    Single-slot tier holding the group tree built for a scope of funds.

    Fund and expanded-group ids arrive from the UI layer; both are reduced
    to sorted integers before hashing.
    """

    name = "group_tree"

    def __init__(self, version: DataVersion, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__(version, clock)
        self._key: Optional[tuple[str, str]] = None
        self._slot: Optional[CacheEntry[Any]] = None

    @staticmethod
    def make_key(fund_ids: Iterable[Any], expanded_group_ids: Iterable[Any]) -> tuple[str, str]:
        return (hash_ids(_int_ids(fund_ids)), hash_ids(_int_ids(expanded_group_ids)))

    def get(self, fund_ids: Iterable[Any], expanded_group_ids: Iterable[Any]) -> Optional[Any]:
        if self._slot is None:
            return self._miss()
        if not self._is_current(self._slot):
            return self._miss(stale=True)
        fund_ids = _int_ids(fund_ids)
        expanded = _int_ids(expanded_group_ids)
        if self._key != self.make_key(fund_ids, expanded) or self._slot.fingerprint != (
            fund_ids,
            expanded,
        ):
            return self._miss()
        return self._hit(self._slot.value)

    def set(self, fund_ids: Iterable[Any], expanded_group_ids: Iterable[Any], tree: Any) -> None:
        fund_ids = _int_ids(fund_ids)
        expanded = _int_ids(expanded_group_ids)
        self._key = self.make_key(fund_ids, expanded)
        self._slot = self._entry(tree, fingerprint=(fund_ids, expanded))

    def clear(self) -> None:
        self._key = None
        self._slot = None

    def __len__(self) -> int:
        return 0 if self._slot is None else 1


# ---------------------------------------------------------------------------
# Layer
# ---------------------------------------------------------------------------

class MetricsCacheLayer:
    """The four tiers bound to one :class:`DataVersion`."""

    def __init__(
        self,
        ttl: float = METRICS_CACHE_TTL,
        max_size: int = MAX_METRICS_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.version = DataVersion()
        self.fund_metrics: FundMetricsCache = FundMetricsCache(
            self.version, ttl=ttl, max_size=max_size, clock=clock
        )
        self.consolidated: ConsolidatedMetricsCache = ConsolidatedMetricsCache(
            self.version, clock=clock
        )
        self.filter_results = FilterResultCache(self.version, clock=clock)
        self.group_tree = GroupTreeCache(self.version, clock=clock)

    @property
    def tiers(self) -> tuple[_Tier, ...]:
        return (self.fund_metrics, self.consolidated, self.filter_results, self.group_tree)

    def bump_data_version(self) -> int:
        version = self.version.bump()
        logger.debug("Data version advanced to %d", version)
        return version

    def clear_all(self) -> None:
        for tier in self.tiers:
            tier.clear()
        logger.info("Cleared all metrics cache tiers")

    def statistics(self) -> dict[str, dict[str, Any]]:
        return {tier.name: tier.stats.to_dict() for tier in self.tiers}
