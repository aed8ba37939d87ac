from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import requests

from uk_tender_loader.config import SourceConfig
from uk_tender_loader.utils.rate_limit import wait_for_slot


class MalformedPageError(RuntimeError):
    pass


@dataclass
class NoticePage:
    notice_type: str
    page: int
    items: List[Dict[str, Any]]


def _unwrap_items(notice_list: list) -> List[Dict[str, Any]]:
    # Search results come back as [{"item": {...}}, ...]. A broken wrapper
    # becomes an empty item so the page length still reflects the response.
    items: List[Dict[str, Any]] = []
    for wrapper in notice_list:
        item = wrapper.get("item") if isinstance(wrapper, dict) else None
        items.append(item if isinstance(item, dict) else {})
    return items


def decode_notice_list(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """Return the unwrapped items of a search page, or None if it doesn't parse."""
    if not isinstance(payload, dict):
        return None
    notice_list = payload.get("noticeList")
    if not isinstance(notice_list, list):
        return None
    return _unwrap_items(notice_list)


@dataclass
class ContractsFinderClient:
    config: SourceConfig = field(default_factory=SourceConfig)
    strict: bool = False
    logger: Optional[logging.Logger] = None

    def __post_init__(self) -> None:
        self.logger = self.logger or logging.getLogger(__name__)

    def search_notices(self, notice_type: str, page: int, page_size: int) -> List[Dict[str, Any]]:
        """Fetch one page of search results.

        Transport errors propagate. A body that does not decode to a notice list,
        including an HTTP error response, is treated as an empty page unless
        ``strict``.
        """
        body = {"noticeType": notice_type, "page": page, "pageSize": page_size}
        wait_for_slot(self.config.api_url, self.config.requests_per_minute)
        r = requests.post(
            self.config.api_url,
            json=body,
            headers={"Content-Type": "application/json"},
            timeout=self.config.timeout_s,
        )
        try:
            payload = r.json()
        except ValueError:
            payload = None

        items = decode_notice_list(payload)
        if items is None:
            if self.strict:
                raise MalformedPageError(
                    f"Page {page} of '{notice_type}' did not contain a notice list (HTTP {r.status_code})"
                )
            self.logger.warning(
                "Page %s of '%s' did not decode (HTTP %s); treating as empty",
                page,
                notice_type,
                r.status_code,
            )
            return []
        return items

    def iter_notice_pages(self, notice_type: str, page_size: int) -> Iterator[NoticePage]:
        """Lazily page through a notice type, starting at page 1.

        Stops at the first empty page. Callers stop early by not asking for the
        next page.
        """
        page = 1
        while True:
            self.logger.info("Fetching page %s of '%s'...", page, notice_type)
            items = self.search_notices(notice_type, page, page_size)
            if not items:
                return
            yield NoticePage(notice_type=notice_type, page=page, items=items)
            page += 1
