from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Iterable, Protocol, Sequence

from app.core.config import Settings, settings as default_settings
from app.core.geo import LatLng
from app.services.external_data import PostalIndexResult


log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class PostalDataSource(Protocol):
    async def fetch_postal_index(self, pincode: int) -> PostalIndexResult | None: ...
    async def geocode(self, place_name: str, city_name: str) -> LatLng | None: ...


@dataclass(frozen=True)
class BatchConfig:
    """
    Pacing levers for rate-limited providers. Delays are in seconds.
    """
    batch_size: int = 25
    batch_delay: float = 0.2
    max_retries: int = 3
    retry_delay: float = 2.0
    geocode_delay: float = 1.0
    max_concurrency: int | None = None  # defaults to batch_size

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    @property
    def concurrency(self) -> int:
        return self.max_concurrency or self.batch_size

    @classmethod
    def from_settings(cls, cfg: Settings | None = None, **overrides) -> "BatchConfig":
        cfg = cfg or default_settings
        base = cls(
            batch_size=cfg.import_batch_size,
            batch_delay=cfg.import_batch_delay_ms / 1000,
            max_retries=cfg.import_max_retries,
            retry_delay=cfg.import_retry_delay_ms / 1000,
            geocode_delay=cfg.import_geocode_delay_ms / 1000,
        )
        return replace(base, **overrides) if overrides else base

    def as_dict(self) -> dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "batch_delay": self.batch_delay,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "geocode_delay": self.geocode_delay,
            "max_concurrency": self.concurrency,
        }


@dataclass(frozen=True)
class EnrichedPostOffice:
    name: str
    branch_type: str | None
    delivery_status: str | None
    district: str | None
    state: str | None
    division: str | None
    region: str | None
    coordinates: LatLng | None  # None = ungeocoded


@dataclass(frozen=True)
class PincodeFetchResult:
    pincode: int
    found: bool
    main_area: str | None = None
    district: str | None = None
    state: str | None = None
    post_offices: list[EnrichedPostOffice] = field(default_factory=list)
    attempts: int = 0


@dataclass(frozen=True)
class BatchProgress:
    batch_index: int
    processed: int
    successful: int
    failed: int
    total: int
    failed_pincodes: list[int]

    @property
    def percentage(self) -> int:
        return int(self.processed * 100 / self.total) if self.total else 100


@dataclass
class BatchFetchOutcome:
    results: list[PincodeFetchResult] = field(default_factory=list)  # found only
    failed_pincodes: list[int] = field(default_factory=list)
    batches: int = 0
    processed: int = 0
    stopped_early: bool = False


def expand_pincode_ranges(ranges: Iterable[dict[str, int] | Sequence[int]]) -> list[int]:
    pincodes: list[int] = []
    for r in ranges:
        start, end = (r["start"], r["end"]) if isinstance(r, dict) else (r[0], r[1])
        pincodes.extend(range(int(start), int(end) + 1))
    return pincodes


def chunked(items: Sequence[int], size: int) -> list[Sequence[int]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchOrchestrator:
    """
    Fetches postal data for many pincodes without upsetting the providers.

    Batches run in submission order. Inside a batch every pincode is fetched
    concurrently (bounded by a semaphore); between batches a fixed delay is
    observed. Geocoding for one pincode's post offices is sequential with its
    own delay because the geocoder's per-caller limit is the strictest one.
    """

    def __init__(self, source: PostalDataSource, config: BatchConfig | None = None, *, sleep: Sleep = asyncio.sleep):
        self.source = source
        self.config = config or BatchConfig()
        self._sleep = sleep

    async def fetch_pincode_data(self, pincode: int, city_name: str) -> PincodeFetchResult:
        cfg = self.config
        attempts = 0
        postal: PostalIndexResult | None = None

        for attempt in range(cfg.max_retries + 1):
            attempts += 1
            try:
                postal = await self.source.fetch_postal_index(pincode)
            except Exception:
                log.warning("postal index attempt %d for %s crashed", attempt + 1, pincode, exc_info=True)
                postal = None
            if postal is not None:
                break
            if attempt < cfg.max_retries:
                await self._sleep(cfg.retry_delay)

        if postal is None:
            log.debug("pincode %s not found after %d attempts", pincode, attempts)
            return PincodeFetchResult(pincode=pincode, found=False, attempts=attempts)

        enriched: list[EnrichedPostOffice] = []
        geocoded_any = False
        for po in postal.post_offices:
            coords = po.coordinates
            if coords is None and po.name:
                if geocoded_any:
                    await self._sleep(cfg.geocode_delay)
                geocoded_any = True
                try:
                    coords = await self.source.geocode(po.name, city_name)
                except Exception:
                    log.warning("geocode crashed for %r (%s)", po.name, pincode, exc_info=True)
                    coords = None

            enriched.append(EnrichedPostOffice(
                name=po.name,
                branch_type=po.branch_type,
                delivery_status=po.delivery_status,
                district=po.district,
                state=po.state,
                division=po.division,
                region=po.region,
                coordinates=coords,
            ))

        first = postal.post_offices[0] if postal.post_offices else None
        return PincodeFetchResult(
            pincode=pincode,
            found=True,
            main_area=(first.district if first and first.district else city_name),
            district=first.district if first else None,
            state=first.state if first else None,
            post_offices=enriched,
            attempts=attempts,
        )

    async def fetch_pincodes_in_batches(
        self,
        pincodes: Sequence[int],
        city_name: str,
        *,
        on_progress: Callable[[BatchProgress], Awaitable[None]] | None = None,
        should_stop: Callable[[], Awaitable[bool]] | None = None,
    ) -> BatchFetchOutcome:
        cfg = self.config
        total = len(pincodes)
        outcome = BatchFetchOutcome()
        sem = asyncio.Semaphore(cfg.concurrency)

        async def _one(pin: int) -> PincodeFetchResult:
            async with sem:
                return await self.fetch_pincode_data(pin, city_name)

        batches = chunked(pincodes, cfg.batch_size)
        for idx, batch in enumerate(batches):
            if idx > 0 and should_stop is not None and await should_stop():
                log.info("import for %s stopped after %d/%d pincodes", city_name, outcome.processed, total)
                outcome.stopped_early = True
                break

            # fan-out / fan-in
            batch_results = await asyncio.gather(*(_one(pin) for pin in batch))
            batch_failed = [r.pincode for r in batch_results if not r.found]
            outcome.results.extend(r for r in batch_results if r.found)
            outcome.failed_pincodes.extend(batch_failed)
            outcome.batches += 1
            outcome.processed += len(batch)

            progress = BatchProgress(
                batch_index=idx,
                processed=outcome.processed,
                successful=len(outcome.results),
                failed=len(outcome.failed_pincodes),
                total=total,
                failed_pincodes=batch_failed,
            )
            log.info(
                "%s: batch %d/%d done, %d/%d processed (%d%%), %d valid",
                city_name, idx + 1, len(batches), progress.processed, total, progress.percentage, progress.successful,
            )
            if on_progress is not None:
                await on_progress(progress)

            if idx < len(batches) - 1:
                await self._sleep(cfg.batch_delay)

        return outcome
