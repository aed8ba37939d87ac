from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import requests

from uk_tender_loader.config import AppConfig, load_config
from uk_tender_loader.connectors.contracts_finder import MalformedPageError
from uk_tender_loader.pipeline.dedup import DedupKeyIndex
from uk_tender_loader.pipeline.filter import (
    DUPLICATE,
    SKIP,
    STOP,
    compute_cutoff,
    evaluate_notice,
)
from uk_tender_loader.pipeline.writer import BatchWriter


@dataclass
class CategoryStats:
    notice_type: str
    pages: int = 0
    accepted: int = 0
    duplicates: int = 0
    skipped: int = 0
    inserted: int = 0
    failed_batches: int = 0
    stopped_at_cutoff: bool = False


@dataclass
class RunSummary:
    cutoff: datetime
    index_size: int = 0
    categories: List[CategoryStats] = field(default_factory=list)

    @property
    def total_inserted(self) -> int:
        return sum(c.inserted for c in self.categories)

    def to_dict(self) -> dict:
        return {
            "cutoff": self.cutoff.isoformat(),
            "index_size": self.index_size,
            "total_inserted": self.total_inserted,
            "categories": [vars(c).copy() for c in self.categories],
        }


class IngestAborted(RuntimeError):
    """An upstream page could not be fetched; ``summary`` holds the partial run."""

    def __init__(self, summary: RunSummary, notice_type: str, cause: Exception) -> None:
        super().__init__(f"Ingest aborted while paging '{notice_type}': {cause}")
        self.summary = summary
        self.notice_type = notice_type
        self.cause = cause


def _ingest_notice_type(
    notice_type: str,
    *,
    source,
    writer: BatchWriter,
    index: DedupKeyIndex,
    cutoff: datetime,
    settings: AppConfig,
    stats: CategoryStats,
    logger: logging.Logger,
) -> None:
    for page in source.iter_notice_pages(notice_type, settings.source.page_size):
        stats.pages += 1
        batch = []
        reached_cutoff = False

        for item in page.items:
            decision = evaluate_notice(
                item,
                cutoff=cutoff,
                index=index,
                notice_type=notice_type,
                details_url_template=settings.source.details_url_template,
            )
            if decision.outcome == STOP:
                # Pages are newest first, so nothing after this can be in range.
                reached_cutoff = True
                break
            if decision.outcome == SKIP:
                stats.skipped += 1
                continue
            if decision.outcome == DUPLICATE:
                stats.duplicates += 1
                logger.info(
                    "Duplicate found. Skipping: %s (%s)",
                    item.get("title"),
                    item.get("organisationName"),
                )
                continue

            stats.accepted += 1
            record = decision.record
            logger.info(
                "Insert: %s | Buyer: %s | Type: %s",
                record["title"],
                record["buyer_name"],
                notice_type,
            )
            batch.append(record)

        if batch:
            if writer.write(batch):
                stats.inserted += len(batch)
            else:
                stats.failed_batches += 1

        if reached_cutoff:
            stats.stopped_at_cutoff = True
            logger.info(
                "Reached notices older than %s on page %s of '%s'; stopping.",
                cutoff.date().isoformat(),
                page.page,
                notice_type,
            )
            return


def run_ingest(
    source,
    store,
    settings: AppConfig | None = None,
    logger: Optional[logging.Logger] = None,
    now: Optional[datetime] = None,
) -> RunSummary:
    """Mirror recent, unseen notices from the source into the store.

    ``source`` provides ``iter_notice_pages(notice_type, page_size)`` and
    ``store`` provides ``fetch_identity_rows`` / ``insert_tenders``. Notice types
    are processed one after another in configured order.
    """
    settings = settings or load_config()
    logger = logger or logging.getLogger(__name__)
    cutoff = compute_cutoff(now, settings.ingest.lookback_days)
    summary = RunSummary(cutoff=cutoff)

    index = DedupKeyIndex.load(
        store,
        page_size=settings.store.read_page_size,
        on_error=settings.ingest.on_error,
        logger=logger,
    )
    summary.index_size = len(index)
    writer = BatchWriter(store, dry_run=settings.ingest.dry_run, logger=logger)

    for notice_type in settings.source.notice_types:
        stats = CategoryStats(notice_type=notice_type)
        summary.categories.append(stats)
        logger.info("Fetching '%s' tenders...", notice_type)
        try:
            _ingest_notice_type(
                notice_type,
                source=source,
                writer=writer,
                index=index,
                cutoff=cutoff,
                settings=settings,
                stats=stats,
                logger=logger,
            )
        except (requests.RequestException, MalformedPageError) as exc:
            raise IngestAborted(summary, notice_type, exc) from exc

        logger.info(
            "'%s': pages=%s accepted=%s duplicates=%s skipped=%s inserted=%s failed_batches=%s",
            notice_type,
            stats.pages,
            stats.accepted,
            stats.duplicates,
            stats.skipped,
            stats.inserted,
            stats.failed_batches,
        )

    logger.info(
        "Inserted %s recent tenders (%s).",
        summary.total_inserted,
        " + ".join(settings.source.notice_types),
    )
    return summary
