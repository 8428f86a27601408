from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from .dates import DEFAULT_LOOKBACK_DAYS, DEFAULT_TIMEZONE, validate_lookback_days
from .sources import DEFAULT_SOURCES, SOURCE_KINDS, SourceConfig, env_key

SOURCE_SECTION_PREFIX = "source:"
TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    def __init__(self, message: str, source_key: Optional[str] = None):
        super().__init__(message)
        self.source_key = source_key


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    return default


def _strict_bool(value: str, field_name: str, source_key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigError(f"source '{source_key}': {field_name} must be a boolean, got '{value}'", source_key)


def _strict_int(value: str, field_name: str, source_key: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ConfigError(
            f"source '{source_key}': {field_name} must be an integer, got '{value}'", source_key
        ) from None


def _read_parser(path: Path) -> Optional[configparser.ConfigParser]:
    if not path.exists():
        return None

    parser = configparser.ConfigParser()
    parser.optionxform = str
    parser.read(path, encoding="utf-8")
    return parser


def _parse_ini(path: Path) -> dict[str, str]:
    parser = _read_parser(path)
    if parser is None:
        return {}

    values: dict[str, str] = {}
    for key, value in parser.defaults().items():
        values[key.upper()] = value
    for section in parser.sections():
        if section.startswith(SOURCE_SECTION_PREFIX):
            continue
        for key, value in parser.items(section):
            values[key.upper()] = value
    return values


def _parse_dotenv(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}

    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if (
            len(value) >= 2
            and value[0] == value[-1]
            and value[0] in {"'", '"'}
        ):
            value = value[1:-1]

        if key:
            values[key.upper()] = value
    return values


def _pick(
    values: Mapping[str, str],
    key: str,
    default: Optional[str] = None,
) -> Optional[str]:
    value = values.get(key)
    if value is None:
        return default
    return str(value)


def _positive(values: Mapping[str, str], key: str, default: str, cast=float):
    raw = (_pick(values, key, default) or default).strip()
    try:
        parsed = cast(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got '{raw}'") from None
    if parsed <= 0:
        raise ConfigError(f"{key} must be positive, got '{raw}'")
    return parsed


def _split_csv(value: Optional[str]) -> tuple[str, ...]:
    raw = (value or "").strip()
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _merged_values(
    config_file: Path | str,
    env_file: Path | str,
    base_env: Optional[Mapping[str, str]],
) -> dict[str, str]:
    merged_values: dict[str, str] = {}
    merged_values.update(_parse_ini(Path(config_file)))
    merged_values.update(_parse_dotenv(Path(env_file)))
    if base_env is None:
        base_env = os.environ
    for key, value in base_env.items():
        if value is not None:
            merged_values[key.upper()] = str(value)
    return merged_values


@dataclass
class Settings:
    telegram_bot_token: Optional[str]
    telegram_chat_id: Optional[str]
    telegram_api_base: str
    request_timeout_sec: float
    request_user_agent: str

    cache_mode: Optional[str]
    cache_dir: Path
    timezone: str
    lookback_days: int

    batch_size: int
    source_timeout_sec: float
    batch_cooldown_sec: float
    delivery_delay_sec: float
    send_max_attempts: int
    send_retry_delay_sec: float

    schedule_times: tuple[str, ...]
    dry_run: bool

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "Settings":
        values = {key.upper(): str(value) for key, value in mapping.items() if value is not None}

        lookback_raw = (_pick(values, "LOOKBACK_DAYS", str(DEFAULT_LOOKBACK_DAYS)) or "").strip()
        try:
            lookback_days = validate_lookback_days(int(lookback_raw))
        except ValueError as exc:
            raise ConfigError(f"LOOKBACK_DAYS: {exc}") from None

        return cls(
            telegram_bot_token=(_pick(values, "TELEGRAM_BOT_TOKEN") or "").strip() or None,
            telegram_chat_id=(_pick(values, "TELEGRAM_CHAT_ID") or "").strip() or None,
            telegram_api_base=(_pick(values, "TELEGRAM_API_BASE", "https://api.telegram.org") or "").strip(),
            request_timeout_sec=_positive(values, "REQUEST_TIMEOUT_SEC", "10"),
            request_user_agent=(_pick(
                values,
                "REQUEST_USER_AGENT",
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) feed-courier/0.1",
            ) or "").strip(),
            cache_mode=(_pick(values, "CACHE_MODE") or "").strip().lower() or None,
            cache_dir=Path(_pick(values, "CACHE_DIR", "./.cache") or "./.cache").expanduser(),
            timezone=(_pick(values, "TIMEZONE", DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE).strip(),
            lookback_days=lookback_days,
            batch_size=_positive(values, "BATCH_SIZE", "3", cast=int),
            source_timeout_sec=_positive(values, "SOURCE_TIMEOUT_SEC", "30"),
            batch_cooldown_sec=float(_pick(values, "BATCH_COOLDOWN_SEC", "0.5") or "0.5"),
            delivery_delay_sec=float(_pick(values, "DELIVERY_DELAY_SEC", "1") or "1"),
            send_max_attempts=_positive(values, "SEND_MAX_ATTEMPTS", "3", cast=int),
            send_retry_delay_sec=float(_pick(values, "SEND_RETRY_DELAY_SEC", "1") or "1"),
            schedule_times=_split_csv(_pick(values, "SCHEDULE_TIMES")),
            dry_run=_as_bool(_pick(values, "DRY_RUN", "false"), default=False),
        )

    @classmethod
    def from_files(
        cls,
        *,
        config_file: Path | str = "config.ini",
        env_file: Path | str = ".env",
        base_env: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        return cls.from_mapping(_merged_values(config_file, env_file, base_env))

    def ensure_dirs(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)


def _source_from_section(key: str, section: Mapping[str, str], base: Optional[SourceConfig]) -> SourceConfig:
    source = base or SourceConfig(key=key, name=key)
    updates: dict[str, object] = {}
    for raw_name, raw_value in section.items():
        name = raw_name.strip().lower()
        value = raw_value.strip()
        if name == "name":
            updates["name"] = value or key
        elif name == "kind":
            updates["kind"] = value.lower()
        elif name == "feed_url":
            updates["feed_url"] = value or None
        elif name in {"lenient", "scoring", "enabled"}:
            updates[name] = _strict_bool(value, name, key)
        elif name == "lookback_days":
            updates["lookback_days"] = _strict_int(value, name, key) if value else None
        elif name == "max_items":
            updates["max_items"] = _strict_int(value, name, key) if value else None
        else:
            raise ConfigError(f"source '{key}': unknown option '{raw_name}'", key)
    return replace(source, **updates)


def validate_source(source: SourceConfig) -> SourceConfig:
    if source.kind not in SOURCE_KINDS:
        options = ", ".join(SOURCE_KINDS)
        raise ConfigError(f"source '{source.key}': unsupported kind '{source.kind}'. Available: {options}", source.key)
    if not source.feed_url:
        raise ConfigError(f"source '{source.key}': feed_url is required", source.key)
    if source.lookback_days is not None:
        try:
            validate_lookback_days(source.lookback_days)
        except ValueError as exc:
            raise ConfigError(f"source '{source.key}': {exc}", source.key) from None
    if source.max_items is not None and source.max_items < 1:
        raise ConfigError(f"source '{source.key}': max_items must be positive", source.key)
    return source


def load_sources(
    *,
    config_file: Path | str = "config.ini",
    env_file: Path | str = ".env",
    base_env: Optional[Mapping[str, str]] = None,
    defaults: Optional[Mapping[str, SourceConfig]] = None,
) -> tuple[list[SourceConfig], list[ConfigError]]:
    catalog: dict[str, SourceConfig] = dict(DEFAULT_SOURCES if defaults is None else defaults)
    errors: list[ConfigError] = []
    broken: set[str] = set()

    parser = _read_parser(Path(config_file))
    if parser is not None:
        for section in parser.sections():
            if not section.startswith(SOURCE_SECTION_PREFIX):
                continue
            key = section[len(SOURCE_SECTION_PREFIX):].strip()
            if not key:
                errors.append(ConfigError(f"section '[{section}]' has no source key"))
                continue
            options = {name: value for name, value in parser.items(section) if name not in parser.defaults()}
            try:
                catalog[key] = _source_from_section(key, options, catalog.get(key))
            except ConfigError as exc:
                errors.append(exc)
                broken.add(key)

    values = _merged_values(config_file, env_file, base_env)
    sources: list[SourceConfig] = []
    for key, source in catalog.items():
        if key in broken:
            continue
        env_name = env_key(key)
        feed_override = (_pick(values, f"RSS_FEED_{env_name}") or "").strip()
        if feed_override:
            source = replace(source, feed_url=feed_override)
        if _as_bool(_pick(values, f"DISABLE_{env_name}"), default=False):
            source = replace(source, enabled=False)
        if not source.enabled:
            continue
        try:
            sources.append(validate_source(source))
        except ConfigError as exc:
            errors.append(exc)
    return sources, errors
