"""
Proxy selection: probe candidates, pick the first reachable egress.

Перебираем прокси по порядку, для каждого короткий запрос к «what is my IP»;
выбираем первый ответивший. Все результаты проб сохраняем для отчёта.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from .config import ProxyConfig
from .errors import ProxyExhaustionError
from .models import ProxyCandidate, ProxyProbeResult, ProxyScheme
from .relay import SocksRelay

logger = logging.getLogger(__name__)


ProbeFunc = Callable[[ProxyCandidate], Awaitable[str]]
RelayFactory = Callable[[str], SocksRelay]


def parse_candidates(raw: Iterable[str]) -> List[ProxyCandidate]:
    """Parse configured proxy strings; invalid entries are logged and skipped."""
    candidates: List[ProxyCandidate] = []
    for item in raw:
        try:
            candidates.append(ProxyCandidate.parse(item))
        except ValueError as e:
            logger.warning("Skipping proxy entry: %s", e)
    return candidates


def make_httpx_probe(probe_url: str, timeout: float) -> ProbeFunc:
    """Return a probe that fetches the egress address through the candidate."""

    async def probe(candidate: ProxyCandidate) -> str:
        async with httpx.AsyncClient(proxy=candidate.url, timeout=timeout) as client:
            resp = await client.get(probe_url)
            resp.raise_for_status()
            address = resp.text.strip()
            if not address:
                raise ValueError("empty response from address endpoint")
            return address

    return probe


@dataclass
class ProxySelection:
    chosen: Optional[ProxyCandidate]
    probes: List[ProxyProbeResult] = field(default_factory=list)

    @property
    def direct(self) -> bool:
        return self.chosen is None


class ProxySelector:
    """Pick the first candidate that answers a short reachability probe."""

    def __init__(
        self,
        candidates: List[ProxyCandidate],
        *,
        probe: ProbeFunc,
        allow_direct: bool = False,
        shuffle: bool = False,
    ) -> None:
        self.candidates = list(candidates)
        if shuffle:
            random.shuffle(self.candidates)
        self.probe = probe
        self.allow_direct = allow_direct

    @classmethod
    def from_config(cls, cfg: ProxyConfig) -> "ProxySelector":
        return cls(
            parse_candidates(cfg.candidates),
            probe=make_httpx_probe(cfg.probe_url, cfg.probe_timeout),
            allow_direct=cfg.allow_direct,
            shuffle=cfg.shuffle,
        )

    async def probe_one(self, candidate: ProxyCandidate) -> ProxyProbeResult:
        started = time.monotonic()
        try:
            address = await self.probe(candidate)
        except Exception as e:  # noqa: BLE001
            result = ProxyProbeResult(
                candidate=candidate,
                reachable=False,
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                elapsed=time.monotonic() - started,
            )
            logger.warning("Proxy %s unreachable: %s", candidate.redacted, result.error)
            return result
        logger.info("Proxy %s OK, egress IP %s", candidate.redacted, address)
        return ProxyProbeResult(
            candidate=candidate,
            reachable=True,
            observed_egress_address=address,
            elapsed=time.monotonic() - started,
        )

    async def select(self) -> ProxySelection:
        """
        Probe candidates in order and stop at the first reachable one.

        Raises ProxyExhaustionError when every candidate fails and direct
        connections are not allowed.
        """
        if not self.candidates:
            logger.info("No proxy candidates configured, using direct connection")
            return ProxySelection(chosen=None)

        probes: List[ProxyProbeResult] = []
        for candidate in self.candidates:
            result = await self.probe_one(candidate)
            probes.append(result)
            if result.reachable:
                return ProxySelection(chosen=candidate, probes=probes)

        if self.allow_direct:
            logger.warning("All %s proxies failed, falling back to direct connection", len(probes))
            return ProxySelection(chosen=None, probes=probes)
        raise ProxyExhaustionError(probes)

    async def probe_all(self) -> List[ProxyProbeResult]:
        """Probe every candidate regardless of outcome (diagnostics)."""
        return [await self.probe_one(candidate) for candidate in self.candidates]


class ProxyLease:
    """
    Turn the chosen candidate into Playwright proxy settings for one run.

    Для SOCKS5 с учётными данными поднимает локальный relay и гасит его при выходе.
    """

    def __init__(self, candidate: Optional[ProxyCandidate], relay_factory: RelayFactory = SocksRelay) -> None:
        self.candidate = candidate
        self.relay_factory = relay_factory
        self.relay: Optional[SocksRelay] = None
        self.settings: Optional[Dict[str, str]] = None

    async def __aenter__(self) -> Optional[Dict[str, str]]:
        candidate = self.candidate
        if candidate is None:
            return None
        if candidate.needs_relay:
            self.relay = self.relay_factory(candidate.url)
            server = await self.relay.start()
            logger.info("SOCKS5 upstream %s bridged via %s", candidate.redacted, server)
            self.settings = {"server": server}
        else:
            self.settings = {"server": candidate.endpoint}
            if candidate.credentials and candidate.scheme is not ProxyScheme.SOCKS5:
                self.settings["username"], self.settings["password"] = candidate.credentials
        return self.settings

    async def __aexit__(self, *exc_info: object) -> None:
        if self.relay is not None:
            try:
                await self.relay.close()
            except Exception as e:  # noqa: BLE001
                logger.warning("Failed to close SOCKS5 relay: %s", e)
            self.relay = None


def format_probes(probes: List[ProxyProbeResult]) -> str:
    """Plain-text probe table for logs and the CLI."""
    if not probes:
        return "no proxy candidates (direct)"
    lines = []
    for result in probes:
        status = f"OK {result.observed_egress_address}" if result.reachable else f"FAIL {result.error}"
        lines.append(f"{result.candidate.redacted:<48} {result.elapsed:5.1f}s  {status}")
    return "\n".join(lines)


__all__ = [
    "parse_candidates",
    "make_httpx_probe",
    "ProxySelection",
    "ProxySelector",
    "ProxyLease",
    "format_probes",
]
