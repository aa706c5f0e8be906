# rates/providers.py
"""
Exchange-rate providers.

The balance aggregator only needs one question answered:

    get_rate(from_currency, to_currency, as_of) -> RateQuote | None

``None`` means "no rate known"; callers turn that into
NoRateAvailableError. The database and static providers never guess: no
inverse pairs, no cross rates, no 1:1 fallback.

GraphRateProvider is the opt-in exception (LEDGER_RATE_INFERENCE). When
no direct rate exists it chains stored rates, e.g. CNY->USD->EUR, and
marks the quote as inferred. It still returns None when no chain of at
most ``max_hops`` stored rates connects the pair.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime, time, timezone as dt_timezone
from decimal import Decimal, localcontext
from typing import Optional

from django.conf import settings
from django.utils import timezone

from rates.models import ExchangeRate


logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 5

# Enough for a product of DEFAULT_MAX_HOPS rates with RATE_PLACES decimals.
INFERENCE_PRECISION = 60


@dataclass(frozen=True)
class RateQuote:
    rate: Decimal
    fetched_at: datetime
    hops: int = 1
    inferred: bool = False
    path: tuple = ()


def as_of_cutoff(as_of) -> datetime:
    """
    Latest instant a rate may have been fetched to count for ``as_of``.

    A date means the end of that day (UTC); None means now.
    """
    if as_of is None:
        return timezone.now()
    if isinstance(as_of, datetime):
        if timezone.is_naive(as_of):
            return timezone.make_aware(as_of, dt_timezone.utc)
        return as_of
    if isinstance(as_of, date):
        return datetime.combine(as_of, time.max, tzinfo=dt_timezone.utc)
    raise TypeError(f"as_of must be a date or datetime, got {type(as_of).__name__}")


class RateProvider:
    """Interface for rate lookups."""

    def get_rate(self, from_currency: str, to_currency: str, as_of) -> Optional[RateQuote]:
        raise NotImplementedError

    def known_rates(self, as_of) -> dict[tuple[str, str], RateQuote]:
        """Every pair this provider can quote for ``as_of``, keyed (from, to)."""
        raise NotImplementedError


class DatabaseRateProvider(RateProvider):
    """Reads the ExchangeRate history: latest fetch at or before ``as_of``."""

    def get_rate(self, from_currency: str, to_currency: str, as_of) -> Optional[RateQuote]:
        row = (
            ExchangeRate.objects
            .filter(
                from_currency=from_currency,
                to_currency=to_currency,
                fetched_at__lte=as_of_cutoff(as_of),
            )
            .order_by("-fetched_at", "-id")
            .values("rate", "fetched_at")
            .first()
        )
        if row is None:
            return None
        return RateQuote(rate=row["rate"], fetched_at=row["fetched_at"])

    def known_rates(self, as_of) -> dict[tuple[str, str], RateQuote]:
        rows = (
            ExchangeRate.objects
            .filter(fetched_at__lte=as_of_cutoff(as_of))
            .order_by("from_currency", "to_currency", "-fetched_at", "-id")
            .values_list("from_currency", "to_currency", "rate", "fetched_at")
            .iterator()
        )
        latest: dict[tuple[str, str], RateQuote] = {}
        for from_currency, to_currency, rate, fetched_at in rows:
            # Rows arrive newest first within each pair.
            latest.setdefault((from_currency, to_currency), RateQuote(rate=rate, fetched_at=fetched_at))
        return latest


class StaticRateProvider(RateProvider):
    """
    In-memory rate table.

    Usage:
        provider = StaticRateProvider({("USD", "EUR"): Decimal("0.92")})
    """

    def __init__(self, rates: dict, fetched_at: Optional[datetime] = None):
        self._rates = {
            (source.upper(), target.upper()): Decimal(str(rate))
            for (source, target), rate in rates.items()
        }
        self._fetched_at = as_of_cutoff(fetched_at) if fetched_at else None

    def _stamp(self, as_of) -> Optional[datetime]:
        cutoff = as_of_cutoff(as_of)
        fetched_at = self._fetched_at or cutoff
        return fetched_at if fetched_at <= cutoff else None

    def get_rate(self, from_currency: str, to_currency: str, as_of) -> Optional[RateQuote]:
        rate = self._rates.get((from_currency, to_currency))
        fetched_at = self._stamp(as_of)
        if rate is None or fetched_at is None:
            return None
        return RateQuote(rate=rate, fetched_at=fetched_at)

    def known_rates(self, as_of) -> dict[tuple[str, str], RateQuote]:
        fetched_at = self._stamp(as_of)
        if fetched_at is None:
            return {}
        return {pair: RateQuote(rate=rate, fetched_at=fetched_at) for pair, rate in self._rates.items()}


def shortest_rate_path(pairs, from_currency: str, to_currency: str, max_hops: int) -> Optional[list[str]]:
    """
    Fewest-hops chain of directed pairs from one currency to another.

    Breadth-first over the pairs, visiting neighbours in code order so
    ties resolve the same way on every call. Returns the currencies
    visited, both ends included, or None when no chain of at most
    ``max_hops`` pairs exists.
    """
    neighbours: dict[str, list[str]] = {}
    for source, target in sorted(pairs):
        neighbours.setdefault(source, []).append(target)

    previous = {from_currency: None}
    queue = deque([(from_currency, 0)])
    while queue:
        currency, hops = queue.popleft()
        if currency == to_currency:
            path = []
            while currency is not None:
                path.append(currency)
                currency = previous[currency]
            return path[::-1]
        if hops == max_hops:
            continue
        for target in neighbours.get(currency, ()):
            if target not in previous:
                previous[target] = currency
                queue.append((target, hops + 1))
    return None


class GraphRateProvider(RateProvider):
    """
    Direct rates first, then a chain of stored rates.

    An inferred rate is the product of the rates along the chain and is
    only as fresh as its oldest link, so ``fetched_at`` is the earliest
    fetch on the path.

    Usage:
        provider = GraphRateProvider(DatabaseRateProvider())
        quote = provider.get_rate("CNY", "EUR", date(2024, 3, 1))
        quote.inferred, quote.hops, quote.path  # True, 2, ("CNY", "USD", "EUR")
    """

    def __init__(self, base: Optional[RateProvider] = None, max_hops: int = DEFAULT_MAX_HOPS):
        if max_hops < 1:
            raise ValueError(f"max_hops must be at least 1, got {max_hops}")
        self.base = base or DatabaseRateProvider()
        self.max_hops = max_hops

    def get_rate(self, from_currency: str, to_currency: str, as_of) -> Optional[RateQuote]:
        if from_currency == to_currency:
            return RateQuote(
                rate=Decimal("1"),
                fetched_at=as_of_cutoff(as_of),
                hops=0,
                path=(from_currency,),
            )

        direct = self.base.get_rate(from_currency, to_currency, as_of)
        if direct is not None:
            return direct

        edges = self.base.known_rates(as_of)
        path = shortest_rate_path(edges, from_currency, to_currency, self.max_hops)
        if path is None:
            return None

        links = [edges[pair] for pair in zip(path, path[1:])]
        rate = Decimal("1")
        with localcontext() as ctx:
            ctx.prec = INFERENCE_PRECISION
            for link in links:
                rate *= link.rate

        logger.info(
            "Exchange rate inferred",
            extra={
                "from_currency": from_currency,
                "to_currency": to_currency,
                "rate_path": "->".join(path),
            },
        )
        return RateQuote(
            rate=rate,
            fetched_at=min(link.fetched_at for link in links),
            hops=len(links),
            inferred=True,
            path=tuple(path),
        )

    def known_rates(self, as_of) -> dict[tuple[str, str], RateQuote]:
        return self.base.known_rates(as_of)


def default_provider() -> RateProvider:
    if getattr(settings, "LEDGER_RATE_INFERENCE", False):
        return GraphRateProvider(DatabaseRateProvider())
    return DatabaseRateProvider()
