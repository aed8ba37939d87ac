from __future__ import annotations

"""
Ingestion filter for Contracts Finder notices.

Each notice is checked, in order, for:
- a usable publication date and identity (otherwise skipped as malformed)
- the recency cutoff (a stale notice stops the scan of its notice type)
- a duplicate identity key (already stored, or accepted earlier this run)

Accepted notices are shaped into rows for the tenders table.

The stop rule relies on Contracts Finder returning notices newest first. Nothing
checks that ordering: an out-of-order stale notice ends the scan early.
"""

import uuid  # noqa: E402
from dataclasses import dataclass  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, Dict, Optional  # noqa: E402

from dateutil import parser as dtparser  # noqa: E402

from uk_tender_loader.config import DEFAULT_DETAILS_URL_TEMPLATE  # noqa: E402
from uk_tender_loader.pipeline.dedup import DedupKeyIndex, identity_key  # noqa: E402

ACCEPT = "accept"
DUPLICATE = "duplicate"
STOP = "stop"
SKIP = "skip"


@dataclass
class Decision:
    outcome: str
    record: Optional[Dict[str, Any]] = None
    key: Optional[str] = None
    reason: str = ""


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def compute_cutoff(now: Optional[datetime] = None, lookback_days: int = 7) -> datetime:
    now = now or _now_utc()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now - timedelta(days=lookback_days)


def _parse_dt(s: Any) -> Optional[datetime]:
    if not s or not isinstance(s, str):
        return None
    try:
        dt = dtparser.parse(s)
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def pick_value_estimate(item: Dict[str, Any]) -> Any:
    # Presence decides, not truthiness: an awarded value of 0 still wins.
    awarded = item.get("awardedValue")
    if awarded is not None:
        return awarded
    low = item.get("valueLow")
    if low is not None:
        return low
    return None


def build_details_url(
    item: Dict[str, Any],
    template: str = DEFAULT_DETAILS_URL_TEMPLATE,
) -> str:
    url = item.get("noticeURL")
    if url:
        return url
    return template.format(id=item.get("id"))


def shape_tender_record(
    item: Dict[str, Any],
    notice_type: str,
    details_url_template: str = DEFAULT_DETAILS_URL_TEMPLATE,
) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "title": item.get("title"),
        "buyer_name": item.get("organisationName"),
        "cpv_category": item.get("cpvDescription"),
        "region": item.get("region"),
        "value_estimate": pick_value_estimate(item),
        "status": item.get("noticeStatus"),
        "closing_date": item.get("deadlineDate") or None,
        "details_url": build_details_url(item, details_url_template),
        "awarded_vendor": item.get("awardedSupplier") or None,
        "notice_type": notice_type,
    }


def evaluate_notice(
    item: Dict[str, Any],
    *,
    cutoff: datetime,
    index: DedupKeyIndex,
    notice_type: str,
    details_url_template: str = DEFAULT_DETAILS_URL_TEMPLATE,
) -> Decision:
    published = _parse_dt(item.get("publishedDate"))
    if published is None:
        return Decision(SKIP, reason="missing_published_date")

    if published < cutoff:
        return Decision(STOP, reason="older_than_cutoff")

    title = item.get("title")
    buyer_name = item.get("organisationName")
    if not title or not buyer_name:
        return Decision(SKIP, reason="missing_identity")

    key = identity_key(title, buyer_name)
    if index.contains(key):
        return Decision(DUPLICATE, key=key, reason="duplicate")

    # Reserve before the write so later pages and notice types never re-accept it.
    index.add(key)
    record = shape_tender_record(item, notice_type, details_url_template)
    return Decision(ACCEPT, record=record, key=key)
