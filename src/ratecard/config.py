from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import tomllib

from dotenv import load_dotenv

from ratecard.errors import ConfigError


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config.toml"

_VERDICTS = {"skipped", "uncertain"}


@dataclass(frozen=True)
class DetectionConfig:
    header_scan_rows: int = 15
    header_scan_cols: int = 10
    min_column_matches: int = 3
    # Verdict for sheets where no signal fired. "uncertain" routes them to manual review.
    unmatched_verdict: str = "skipped"


@dataclass(frozen=True)
class ExtractionConfig:
    default_currency: str = "CNY"
    header_scan_rows: int = 8
    max_data_rows: int = 150


@dataclass(frozen=True)
class StructureConfig:
    minor_tolerance: float = 0.01
    max_scan_rows: int = 500


@dataclass(frozen=True)
class WeightConfig:
    default_divisor: float = 5000.0


@dataclass(frozen=True)
class StorageConfig:
    baseline_path: Path | None = None


@dataclass(frozen=True)
class AppConfig:
    detection: DetectionConfig
    extraction: ExtractionConfig
    structure: StructureConfig
    weight: WeightConfig
    storage: StorageConfig
    log_level: str = "INFO"

    @classmethod
    def default(cls) -> AppConfig:
        return cls(
            detection=DetectionConfig(),
            extraction=ExtractionConfig(),
            structure=StructureConfig(),
            weight=WeightConfig(),
            storage=StorageConfig(),
        )


def load_app_config(config_path: Path | None = None) -> AppConfig:
    config_path = (config_path or DEFAULT_CONFIG_PATH).resolve()
    app_dir = config_path.parent

    env_path = app_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    try:
        with config_path.open("rb") as f:
            raw = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {config_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    detection = raw.get("detection", {})
    extraction = raw.get("extraction", {})
    structure = raw.get("structure", {})
    weight = raw.get("weight", {})
    storage = raw.get("storage", {})

    unmatched_verdict = str(detection.get("unmatched_verdict", "skipped"))
    if unmatched_verdict not in _VERDICTS:
        raise ConfigError(f"detection.unmatched_verdict must be one of {sorted(_VERDICTS)}, got {unmatched_verdict!r}")

    baseline_raw = os.getenv("RATECARD_BASELINE_PATH") or storage.get("baseline_path")
    baseline_path = (app_dir / baseline_raw).resolve() if baseline_raw else None

    default_divisor = float(weight.get("default_divisor", 5000))
    if default_divisor <= 0:
        raise ConfigError("weight.default_divisor must be positive")

    return AppConfig(
        detection=DetectionConfig(
            header_scan_rows=int(detection.get("header_scan_rows", 15)),
            header_scan_cols=int(detection.get("header_scan_cols", 10)),
            min_column_matches=int(detection.get("min_column_matches", 3)),
            unmatched_verdict=unmatched_verdict,
        ),
        extraction=ExtractionConfig(
            default_currency=str(os.getenv("RATECARD_DEFAULT_CURRENCY") or extraction.get("default_currency", "CNY")),
            header_scan_rows=int(extraction.get("header_scan_rows", 8)),
            max_data_rows=int(extraction.get("max_data_rows", 150)),
        ),
        structure=StructureConfig(
            minor_tolerance=float(structure.get("minor_tolerance", 0.01)),
            max_scan_rows=int(structure.get("max_scan_rows", 500)),
        ),
        weight=WeightConfig(default_divisor=default_divisor),
        storage=StorageConfig(baseline_path=baseline_path),
        log_level=str(os.getenv("RATECARD_LOG_LEVEL") or raw.get("log_level", "INFO")).upper(),
    )
