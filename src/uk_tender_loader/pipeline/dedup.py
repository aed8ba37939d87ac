from __future__ import annotations

import logging
from typing import Iterable, Optional

from uk_tender_loader.connectors.supabase_rest import StoreReadError

KEY_DELIMITER = "|||"


def identity_key(title: str, buyer_name: str) -> str:
    return f"{title}{KEY_DELIMITER}{buyer_name}"


class DedupKeyIndex:
    """Identity keys of tenders already in the store, plus those accepted this run."""

    def __init__(self, keys: Optional[Iterable[str]] = None) -> None:
        self._keys: set[str] = set(keys or ())

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def contains(self, key: str) -> bool:
        return key in self._keys

    def add(self, key: str) -> None:
        self._keys.add(key)

    @classmethod
    def load(
        cls,
        store,
        page_size: int = 1000,
        on_error: str = "continue",
        logger: Optional[logging.Logger] = None,
    ) -> "DedupKeyIndex":
        """Build the index from every persisted (title, buyer_name) pair.

        A failed read keeps whatever was loaded so far when ``on_error`` is
        "continue"; with "abort" the StoreReadError propagates.
        """
        logger = logger or logging.getLogger(__name__)
        index = cls()
        offset = 0
        while True:
            try:
                rows = store.fetch_identity_rows(offset, page_size)
            except StoreReadError as exc:
                if on_error == "abort":
                    raise
                logger.warning(
                    "Could not read existing tenders at offset %s (HTTP %s); "
                    "continuing with %s known keys",
                    offset,
                    exc.status_code,
                    len(index),
                )
                break
            if not rows:
                break

            for row in rows:
                if not isinstance(row, dict):
                    continue
                title = row.get("title")
                buyer_name = row.get("buyer_name")
                if title and buyer_name:
                    index.add(identity_key(title, buyer_name))

            if len(rows) < page_size:
                break
            offset += page_size

        logger.info("Loaded %s existing tender keys", len(index))
        return index
