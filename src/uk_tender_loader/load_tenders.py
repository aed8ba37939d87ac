from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from uk_tender_loader.config import AppConfig, load_config
from uk_tender_loader.connectors.contracts_finder import ContractsFinderClient
from uk_tender_loader.connectors.supabase_rest import SupabaseRestClient
from uk_tender_loader.pipeline.ingest import IngestAborted, run_ingest


def _now_local(tz_name: str) -> datetime:
    try:
        return datetime.now(ZoneInfo(tz_name))
    except Exception:
        return datetime.now()


def _setup_logging(log_dir: Path, tz_name: str) -> logging.Logger:
    log_dir.mkdir(parents=True, exist_ok=True)
    now_local = _now_local(tz_name)
    log_path = log_dir / f"run_{now_local:%Y%m%d}.log"

    logger = logging.getLogger("uk_tender_loader")
    logger.setLevel(logging.INFO)

    if not logger.handlers:
        fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setFormatter(fmt)
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        logger.addHandler(fh)
        logger.addHandler(sh)

    logger.info("Logging to %s", log_path)
    return logger


def _load_settings(config_path: Optional[str]) -> AppConfig:
    return load_config(Path(config_path) if config_path else None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Load recent Contracts Finder notices into the tenders table."
    )
    parser.add_argument("--config", help="Path to YAML config.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Read and filter notices but don't insert anything.",
    )
    parser.add_argument(
        "--lookback-days",
        type=int,
        default=None,
        help="Ignore notices published more than this many days ago.",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Notices requested per upstream page.",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = _load_settings(args.config)

    if args.dry_run:
        settings.ingest.dry_run = True
    if args.lookback_days is not None:
        settings.ingest.lookback_days = args.lookback_days
    if args.page_size is not None:
        settings.source.page_size = args.page_size

    logger = _setup_logging(settings.paths.log_dir, settings.timezone)

    missing = settings.missing_credentials()
    if missing:
        logger.error("Missing required environment variables: %s", ", ".join(missing))
        return 1

    source = ContractsFinderClient(
        config=settings.source,
        strict=settings.ingest.on_error == "abort",
        logger=logger,
    )
    store = SupabaseRestClient(config=settings.store, logger=logger)

    logger.info(
        "Loading notices into %s (env=%s, lookback=%sd, on_error=%s, dry_run=%s)",
        settings.store.rest_url,
        settings.app_env,
        settings.ingest.lookback_days,
        settings.ingest.on_error,
        settings.ingest.dry_run,
    )

    try:
        summary = run_ingest(source, store, settings=settings, logger=logger)
    except IngestAborted as exc:
        logger.exception("Ingest aborted during '%s'", exc.notice_type)
        logger.error(
            "Inserted %s tenders before the failure.", exc.summary.total_inserted
        )
        return 1
    except Exception:
        logger.exception("Ingest failed")
        return 1

    logger.info("Run summary: %s", summary.to_dict())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
