"""Candidate carriers eligible for a tracking category.

The order of ``list`` is the search priority of auto-detect mode; the
engine never re-ranks it.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from shiptrack.tracking.client import TrackingClient
from shiptrack.tracking.models import CandidateProvider, TrackingCategory

logger = logging.getLogger(__name__)

# (display name, keyname) as the provider lists its shipping lines
SHIPPING_LINES: tuple[tuple[str, str], ...] = (
    ("ACL", "ACL"),
    ("ANL", "ANL"),
    ("APL", "APL"),
    ("Arkas", "ARKAS"),
    ("CMA CGM", "CMA-CGM"),
    ("CNC", "CNC"),
    ("COSCO", "COSCO"),
    ("Crowley", "CROWLEY"),
    ("CULines", "CULINES"),
    ("Emirates Shipping Line", "EMIRATES-SHIPPING-LINE"),
    ("Evergreen", "EVERGREEN"),
    ("Gold Star", "GOLD-STAR"),
    ("Grimaldi", "GRIMALDI"),
    ("Hamburg Sud", "HAMBURG-SUD"),
    ("Hapag-Lloyd", "HAPAG-LLOYD"),
    ("HMM", "HMM"),
    ("Kambara Kisen", "KAMBARA-KISEN"),
    ("KMTC", "KMTC"),
    ("Maersk", "MAERSK"),
    ("Matson", "MATSON"),
    ("Messina", "MESSINA"),
    ("MSC", "MSC"),
    ("Namsung", "NAMSUNG"),
    ("One", "ONE"),
    ("OOCL", "OOCL"),
    ("PIL", "PIL"),
    ("RCL", "RCL"),
    ("Safmarine", "SAFMARINE"),
    ("Samskip", "SAMSKIP"),
    ("SCI", "SCI"),
    ("Seaboard Marine", "SEABOARD-MARINE"),
    ("Sealand", "SEALAND"),
    ("SeaLead", "SEALEAD"),
    ("Seth Shipping", "SETH-SHIPPING"),
    ("SITC", "SITC"),
    ("Sinokor", "SINOKOR"),
    ("TS Lines", "TS-LINES"),
    ("Wan Hai", "WAN-HAI"),
    ("Yang Ming", "YANG-MING"),
    ("ZIM", "ZIM"),
)


def apply_preference(
    providers: Sequence[CandidateProvider], preferred: Iterable[str]
) -> list[CandidateProvider]:
    """Move preferred keynames to the front, in the given order."""
    by_id = {provider.id: provider for provider in providers}
    front: list[CandidateProvider] = []
    for key in preferred:
        provider = by_id.get(key.strip().upper())
        if provider is not None and provider not in front:
            front.append(provider)
    return front + [provider for provider in providers if provider not in front]


class CandidateCatalog(ABC):
    """Source of ordered candidate carriers per category."""

    @abstractmethod
    async def list(self, category: TrackingCategory) -> list[CandidateProvider]:
        """Return the candidates for ``category`` in search order."""

    async def get(self, provider_id: str) -> CandidateProvider | None:
        """Look up a provider by keyname across all categories."""
        key = provider_id.strip().upper()
        for category in TrackingCategory:
            for provider in await self.list(category):
                if provider.id.upper() == key:
                    return provider
        return None


class StaticCandidateCatalog(CandidateCatalog):
    """Catalog backed by a fixed list of providers."""

    def __init__(
        self,
        providers: Iterable[CandidateProvider] | None = None,
        *,
        preferred: Iterable[str] = (),
    ):
        if providers is None:
            providers = [
                CandidateProvider(id=keyname, display_name=name)
                for name, keyname in SHIPPING_LINES
            ]
        self._providers = apply_preference(list(providers), preferred)

    @classmethod
    def from_ids(
        cls,
        ids: Iterable[str],
        categories: Iterable[TrackingCategory] | None = None,
    ) -> StaticCandidateCatalog:
        """Build a catalog from bare keynames, keeping their order."""
        scope = frozenset(categories) if categories is not None else frozenset(
            TrackingCategory
        )
        return cls(
            [
                CandidateProvider(id=key, display_name=key, categories=scope)
                for key in ids
            ]
        )

    async def list(self, category: TrackingCategory) -> list[CandidateProvider]:
        return [provider for provider in self._providers if provider.supports(category)]


class RemoteCandidateCatalog(CandidateCatalog):
    """Catalog loaded once from the provider's available-lines query."""

    def __init__(self, client: TrackingClient, *, preferred: Iterable[str] = ()):
        self.client = client
        self.preferred = [key.strip().upper() for key in preferred]
        self._lines: dict[TrackingCategory, list[CandidateProvider]] | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[TrackingCategory, list[CandidateProvider]]:
        async with self._lock:
            if self._lines is not None:
                return self._lines

            raw = await self.client.available_lines()
            lines: dict[TrackingCategory, list[CandidateProvider]] = {}
            for category in TrackingCategory:
                providers: list[CandidateProvider] = []
                seen: set[str] = set()
                for entry in raw.get(category, []):
                    keyname = str(entry.get("keyname") or "").strip().upper()
                    if not keyname or keyname in seen:
                        continue
                    seen.add(keyname)
                    providers.append(
                        CandidateProvider(
                            id=keyname,
                            display_name=str(entry.get("name") or keyname),
                            categories=frozenset({category}),
                        )
                    )
                lines[category] = apply_preference(providers, self.preferred)

            logger.info(
                "Loaded carrier catalog: %s",
                ", ".join(f"{c.name.lower()}={len(p)}" for c, p in lines.items()),
            )
            self._lines = lines
            return lines

    async def list(self, category: TrackingCategory) -> list[CandidateProvider]:
        lines = await self._load()
        return list(lines.get(category, []))

    def refresh(self) -> None:
        """Drop the cached lines so the next call reloads them."""
        self._lines = None
