from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional


class BatchWriter:
    """Writes one page of accepted tenders to the store in a single request.

    There is no retry. Keys reserved in the dedup index for a failed batch stay
    reserved, so a failed record is not attempted again within the same run.
    """

    def __init__(self, store, dry_run: bool = False, logger: Optional[logging.Logger] = None) -> None:
        self.store = store
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(__name__)

    def write(self, records: List[Dict[str, Any]]) -> bool:
        if not records:
            return True
        if self.dry_run:
            self.logger.info("Dry-run: would insert %s tenders", len(records))
            return True

        result = self.store.insert_tenders(records)
        if not result.ok:
            self.logger.error(
                "Batch insert error (%s tenders, HTTP %s): %s",
                len(records),
                result.status_code,
                result.error,
            )
            return False
        return True
