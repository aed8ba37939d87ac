from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_NOTICE_TYPES = ["Opportunity", "Awarded"]
DEFAULT_API_URL = "https://www.contractsfinder.service.gov.uk/api/rest/2/search_notices/json"
DEFAULT_DETAILS_URL_TEMPLATE = "https://www.contractsfinder.service.gov.uk/notice/{id}"
ON_ERROR_CHOICES = ("continue", "abort")


def _bool_from_env(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _int_from_env(value: Optional[str], default: int) -> int:
    if value is None or not str(value).strip():
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def _list_from_env(value: Optional[str], default: list[str]) -> list[str]:
    if value is None or not str(value).strip():
        return list(default)
    return [v.strip() for v in str(value).split(",") if v.strip()]


def _ensure_list(value: Any, default: list[str]) -> list[str]:
    if value is None:
        return list(default)
    if isinstance(value, list):
        return [str(v) for v in value]
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return list(default)


def _on_error_value(value: Any, default: str) -> str:
    v = str(value or "").strip().lower()
    if not v:
        return default
    if v not in ON_ERROR_CHOICES:
        logger.warning(
            "Unknown on_error value %r (expected one of %s); using %r",
            value,
            ", ".join(ON_ERROR_CHOICES),
            default,
        )
        return default
    return v


def _resolve_path(repo_root: Path, value: Optional[str], default: str) -> Path:
    raw = value if value else default
    path = Path(raw)
    if not path.is_absolute():
        path = repo_root / path
    return path


def _deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_repo_root(start: Optional[Path] = None) -> Path:
    env_root = os.getenv("UK_TENDER_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve()

    candidates = []
    if start:
        candidates.append(Path(start).resolve())
    candidates.append(Path.cwd().resolve())
    candidates.append(Path(__file__).resolve())

    for base in candidates:
        for parent in [base] + list(base.parents):
            if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
                return parent

    return Path.cwd().resolve()


def get_config_path(repo_root: Optional[Path] = None) -> Path:
    env_path = os.getenv("UK_TENDER_CONFIG")
    if env_path:
        return Path(env_path).expanduser().resolve()
    repo_root = repo_root or get_repo_root()
    return repo_root / "config.yaml"


@dataclass
class PathsConfig:
    repo_root: Path
    log_dir: Path

    def to_dict(self) -> dict:
        return {"log_dir": _relativize_path(self.log_dir, self.repo_root)}


@dataclass
class StoreConfig:
    url: str = ""
    service_key: str = ""
    table: str = "tenders"
    timeout_s: int = 60
    read_page_size: int = 1000

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/{self.table}"

    def to_dict(self) -> dict:
        # Credentials stay in the environment, never in config.yaml.
        return {
            "table": self.table,
            "timeout_s": self.timeout_s,
            "read_page_size": self.read_page_size,
        }


@dataclass
class SourceConfig:
    api_url: str = DEFAULT_API_URL
    notice_types: list[str] = field(default_factory=lambda: list(DEFAULT_NOTICE_TYPES))
    page_size: int = 100
    timeout_s: int = 60
    details_url_template: str = DEFAULT_DETAILS_URL_TEMPLATE
    requests_per_minute: int = 0

    def to_dict(self) -> dict:
        return {
            "api_url": self.api_url,
            "notice_types": list(self.notice_types),
            "page_size": self.page_size,
            "timeout_s": self.timeout_s,
            "details_url_template": self.details_url_template,
            "requests_per_minute": self.requests_per_minute,
        }


@dataclass
class IngestConfig:
    lookback_days: int = 7
    on_error: str = "continue"
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "lookback_days": self.lookback_days,
            "on_error": self.on_error,
            "dry_run": self.dry_run,
        }


@dataclass
class AppConfig:
    app_env: str = "dev"
    timezone: str = "Europe/London"
    paths: PathsConfig = field(default_factory=lambda: build_paths(get_repo_root(), {}))
    store: StoreConfig = field(default_factory=StoreConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)

    def missing_credentials(self) -> list[str]:
        missing = []
        if not self.store.url:
            missing.append("SUPABASE_URL")
        if not self.store.service_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        return missing

    def to_dict(self) -> dict:
        return {
            "app": {"env": self.app_env, "timezone": self.timezone},
            "paths": self.paths.to_dict(),
            "store": self.store.to_dict(),
            "source": self.source.to_dict(),
            "ingest": self.ingest.to_dict(),
        }


def _relativize_path(path: Path, repo_root: Path) -> str:
    try:
        return str(path.relative_to(repo_root))
    except ValueError:
        return str(path)


def build_paths(repo_root: Path, data: dict) -> PathsConfig:
    log_dir = _resolve_path(repo_root, data.get("log_dir") if data else None, "logs")
    return PathsConfig(repo_root=repo_root, log_dir=log_dir)


def default_config_dict(repo_root: Path) -> dict:
    return {
        "app": {"env": "dev", "timezone": "Europe/London"},
        "paths": {"log_dir": "logs"},
        "store": StoreConfig().to_dict(),
        "source": SourceConfig().to_dict(),
        "ingest": IngestConfig().to_dict(),
    }


def config_from_dict(repo_root: Path, data: dict) -> AppConfig:
    app = data.get("app", {}) if isinstance(data, dict) else {}
    paths_data = data.get("paths", {}) if isinstance(data, dict) else {}
    store_data = data.get("store", {}) if isinstance(data, dict) else {}
    source_data = data.get("source", {}) if isinstance(data, dict) else {}
    ingest_data = data.get("ingest", {}) if isinstance(data, dict) else {}

    return AppConfig(
        app_env=str(app.get("env", "dev")),
        timezone=str(app.get("timezone", "Europe/London")),
        paths=build_paths(repo_root, paths_data),
        store=StoreConfig(
            url=str(store_data.get("url", "") or ""),
            service_key=str(store_data.get("service_key", "") or ""),
            table=str(store_data.get("table", "tenders")),
            timeout_s=int(store_data.get("timeout_s", 60)),
            read_page_size=int(store_data.get("read_page_size", 1000)),
        ),
        source=SourceConfig(
            api_url=str(source_data.get("api_url", DEFAULT_API_URL)),
            notice_types=_ensure_list(
                source_data.get("notice_types", list(DEFAULT_NOTICE_TYPES)),
                list(DEFAULT_NOTICE_TYPES),
            ),
            page_size=int(source_data.get("page_size", 100)),
            timeout_s=int(source_data.get("timeout_s", 60)),
            details_url_template=str(
                source_data.get("details_url_template", DEFAULT_DETAILS_URL_TEMPLATE)
            ),
            requests_per_minute=int(source_data.get("requests_per_minute", 0)),
        ),
        ingest=IngestConfig(
            lookback_days=int(ingest_data.get("lookback_days", 7)),
            on_error=_on_error_value(ingest_data.get("on_error"), "continue"),
            dry_run=bool(ingest_data.get("dry_run", False)),
        ),
    )


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    content = path.read_text(encoding="utf-8").strip()
    if not content:
        return {}
    data = yaml.safe_load(content)
    return data if isinstance(data, dict) else {}


def load_config(
    path: Optional[Path] = None,
    apply_env: bool = True,
    load_env_file: bool = True,
) -> AppConfig:
    repo_root = get_repo_root()
    config_path = path or get_config_path(repo_root)

    if load_env_file:
        env_path = repo_root / ".env"
        if env_path.exists():
            load_dotenv(env_path)

    defaults = default_config_dict(repo_root)
    yaml_data = _load_yaml(Path(config_path))
    merged = _deep_merge(defaults, yaml_data)
    config = config_from_dict(repo_root, merged)

    if apply_env:
        apply_env_overrides(config)

    return config


def apply_env_overrides(config: AppConfig) -> AppConfig:
    config.app_env = os.getenv("APP_ENV", config.app_env)
    config.timezone = os.getenv("UK_TENDER_TIMEZONE", config.timezone)

    log_dir = os.getenv("UK_TENDER_LOG_DIR")
    if log_dir:
        config.paths = build_paths(config.paths.repo_root, {"log_dir": log_dir})

    config.store.url = os.getenv("SUPABASE_URL", config.store.url)
    config.store.service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", config.store.service_key)
    config.store.table = os.getenv("UK_TENDER_TABLE", config.store.table)
    config.store.timeout_s = _int_from_env(
        os.getenv("UK_TENDER_STORE_TIMEOUT_S"),
        config.store.timeout_s,
    )
    config.store.read_page_size = _int_from_env(
        os.getenv("UK_TENDER_STORE_READ_PAGE_SIZE"),
        config.store.read_page_size,
    )

    config.source.api_url = os.getenv("UK_TENDER_API_URL", config.source.api_url)
    config.source.notice_types = _list_from_env(
        os.getenv("UK_TENDER_NOTICE_TYPES"),
        config.source.notice_types,
    )
    config.source.page_size = _int_from_env(
        os.getenv("UK_TENDER_PAGE_SIZE"),
        config.source.page_size,
    )
    config.source.timeout_s = _int_from_env(
        os.getenv("UK_TENDER_SOURCE_TIMEOUT_S"),
        config.source.timeout_s,
    )
    config.source.requests_per_minute = _int_from_env(
        os.getenv("UK_TENDER_REQUESTS_PER_MINUTE"),
        config.source.requests_per_minute,
    )

    config.ingest.lookback_days = _int_from_env(
        os.getenv("UK_TENDER_LOOKBACK_DAYS"),
        config.ingest.lookback_days,
    )
    config.ingest.on_error = _on_error_value(
        os.getenv("UK_TENDER_ON_ERROR"),
        config.ingest.on_error,
    )
    config.ingest.dry_run = _bool_from_env(
        os.getenv("UK_TENDER_DRY_RUN"),
        config.ingest.dry_run,
    )

    return config
