from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from uk_tender_loader.config import StoreConfig


class StoreReadError(RuntimeError):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Store read failed with HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


@dataclass
class StoreWriteResult:
    ok: bool
    status_code: Optional[int] = None
    error: str = ""


@dataclass
class SupabaseRestClient:
    """PostgREST access to the tenders table."""

    config: StoreConfig = field(default_factory=StoreConfig)
    logger: Optional[logging.Logger] = None

    def __post_init__(self) -> None:
        self.logger = self.logger or logging.getLogger(__name__)

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self.config.service_key,
            "Authorization": f"Bearer {self.config.service_key}",
            "Content-Type": "application/json",
        }
        headers.update(extra)
        return headers

    def fetch_identity_rows(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        """One page of (title, buyer_name) projections.

        Raises StoreReadError on a non-success status. An empty list means the
        table is exhausted.
        """
        params = {
            "select": "title,buyer_name",
            "order": "id.asc",
            "offset": str(offset),
            "limit": str(limit),
        }
        r = requests.get(
            self.config.rest_url,
            params=params,
            headers=self._headers(),
            timeout=self.config.timeout_s,
        )
        if not r.ok:
            raise StoreReadError(r.status_code, r.text)
        rows = r.json()
        return rows if isinstance(rows, list) else []

    def insert_tenders(self, records: List[Dict[str, Any]]) -> StoreWriteResult:
        try:
            r = requests.post(
                self.config.rest_url,
                json=records,
                headers=self._headers(Prefer="return=minimal"),
                timeout=self.config.timeout_s,
            )
        except requests.RequestException as exc:
            # A failed insert costs one batch; the run carries on with the next page.
            return StoreWriteResult(ok=False, error=str(exc))
        if not r.ok:
            return StoreWriteResult(ok=False, status_code=r.status_code, error=r.text)
        return StoreWriteResult(ok=True, status_code=r.status_code)
