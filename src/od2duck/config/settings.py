"""
Configuration management for od2duck.

Usage:
    from od2duck.config.settings import Config
    config = Config()
    config.processing.max_mem_gb

Environment Variables:
    OD2DUCK_MAX_MEM_GB: DuckDB memory budget in GB (default: total RAM - 4, min 4)
    OD2DUCK_MAX_CPU: DuckDB threads (default: CPU count - 1, min 1)
    OD2DUCK_MAX_DOWNLOAD_GB: Maximum download size in GB (default: 1)
    OD2DUCK_OUTPUT_DIR: Directory for filtered output databases (default: data)
    OD2DUCK_TEMP_DIR: Root for per-call workspaces (default: <tmp>/od2duck)
    OD2DUCK_V1_BASE_URL / OD2DUCK_V2_BASE_URL: MITMA open data roots
    OD2DUCK_SIMPLIFY_TOLERANCE: Zone simplification tolerance in source units
    OD2DUCK_HTTP_TIMEOUT: Timeout in seconds for remote size probes
    TEMP_RETENTION_HOURS: Age after which leftover workspaces are removed
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import psutil
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def default_max_mem_gb() -> float:
    """Total RAM minus 4GB headroom, never below 4GB."""
    total_gb = psutil.virtual_memory().total / (1024 ** 3)
    return float(max(4, int(total_gb) - 4))


def default_max_cpu() -> int:
    """All cores but one, never below 1."""
    return max(1, (os.cpu_count() or 1) - 1)


@dataclass
class ProcessingConfig:
    """DuckDB resource limits."""
    max_mem_gb: float
    max_cpu: int
    max_download_gb: float = 1.0

    def __post_init__(self):
        """Validate processing configuration."""
        if self.max_mem_gb <= 0:
            raise ValueError("Memory budget must be positive")
        if self.max_cpu < 1:
            raise ValueError("Thread count must be positive")
        if self.max_download_gb <= 0:
            raise ValueError("Maximum download size must be positive")


@dataclass
class StorageConfig:
    """Locations for outputs and per-call workspaces."""
    output_dir: Path
    temp_root: Path
    retention_hours: int = 24

    def __post_init__(self):
        """Validate storage configuration."""
        self.output_dir = Path(self.output_dir)
        self.temp_root = Path(self.temp_root)
        if self.retention_hours < 0:
            raise ValueError("Retention hours must be non-negative")


@dataclass
class SourceConfig:
    """MITMA open data locations and zone handling."""
    v1_base_url: str
    v2_base_url: str
    simplify_tolerance: float = 200.0
    http_timeout: float = 60.0

    def __post_init__(self):
        """Validate source configuration."""
        for url in (self.v1_base_url, self.v2_base_url):
            if not url:
                raise ValueError("Base URL cannot be empty")
        self.v1_base_url = self.v1_base_url.rstrip("/")
        self.v2_base_url = self.v2_base_url.rstrip("/")
        if self.simplify_tolerance < 0:
            raise ValueError("Simplify tolerance must be non-negative")
        if self.http_timeout <= 0:
            raise ValueError("HTTP timeout must be positive")

    def base_url(self, version: int) -> str:
        return self.v1_base_url if int(version) == 1 else self.v2_base_url


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


class Config:
    """
    Centralized configuration for od2duck.

    Environment variables loaded (in order of preference):
    1. Explicit environment file passed to constructor
    2. .env.{ENVIRONMENT} (where ENVIRONMENT=development|production|staging)
    3. .env in the working directory (or the source checkout)
    4. System environment variables

    Example:
        config = Config()
        config = Config(env_file=Path("/secure/production.env"))
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 env_file: Optional[Path] = None):
        self.environment = environment or os.getenv("ENVIRONMENT", "development")
        self.project_root = self._find_project_root()

        self._load_environment_variables(env_file)

        self._load_processing_config()
        self._load_storage_config()
        self._load_source_config()

    def _find_project_root(self) -> Path:
        """Directory holding the .env files: the working directory if it has one, else the source checkout."""
        cwd = Path.cwd()
        if (cwd / ".env").exists() or (cwd / f".env.{self.environment}").exists():
            return cwd

        for parent in Path(__file__).resolve().parents:
            if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
                return parent
        return cwd

    def _load_environment_variables(self, env_file: Path | None) -> None:
        """Load .env files without overriding variables already set in the process."""
        if env_file is not None:
            if not env_file.exists():
                raise ConfigurationError(f"Specified env file not found: {env_file}")
            candidates = [env_file]
        else:
            candidates = [
                self.project_root / f".env.{self.environment}",
                self.project_root / ".env",
            ]

        self._loaded_env_files = []
        for candidate in candidates:
            if candidate.exists():
                load_dotenv(candidate)
                self._loaded_env_files.append(str(candidate))
                logger.info(f"Loaded configuration from {candidate}")

        if not self._loaded_env_files:
            logger.debug("No .env files found, using process environment only")

    def _env_number(self, name: str, default: Any, cast=float):
        raw = os.getenv(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return cast(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None

    def _load_processing_config(self) -> None:
        """Load DuckDB resource limits."""
        max_mem_gb = self._env_number("OD2DUCK_MAX_MEM_GB", None)
        max_cpu = self._env_number("OD2DUCK_MAX_CPU", None, int)
        max_download_gb = self._env_number("OD2DUCK_MAX_DOWNLOAD_GB", 1.0)

        try:
            self.processing = ProcessingConfig(
                max_mem_gb=max_mem_gb if max_mem_gb is not None else default_max_mem_gb(),
                max_cpu=max_cpu if max_cpu is not None else default_max_cpu(),
                max_download_gb=max_download_gb,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid processing configuration: {e}")

    def _load_storage_config(self) -> None:
        """Load output and workspace locations."""
        output_dir = os.getenv("OD2DUCK_OUTPUT_DIR", "data")
        temp_root = os.getenv("OD2DUCK_TEMP_DIR") or str(Path(tempfile.gettempdir()) / "od2duck")
        retention_hours = self._env_number("TEMP_RETENTION_HOURS", 24, int)

        try:
            self.storage = StorageConfig(
                output_dir=Path(output_dir),
                temp_root=Path(temp_root),
                retention_hours=retention_hours,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid storage configuration: {e}")

    def _load_source_config(self) -> None:
        """Load MITMA data source settings."""
        try:
            self.source = SourceConfig(
                v1_base_url=os.getenv("OD2DUCK_V1_BASE_URL", "https://opendata-movilidad.mitma.es"),
                v2_base_url=os.getenv("OD2DUCK_V2_BASE_URL", "https://movilidad-opendata.mitma.es"),
                simplify_tolerance=self._env_number("OD2DUCK_SIMPLIFY_TOLERANCE", 200.0),
                http_timeout=self._env_number("OD2DUCK_HTTP_TIMEOUT", 60.0),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid source configuration: {e}")

    def __repr__(self) -> str:
        return (
            f"Config(environment={self.environment}, "
            f"output_dir={self.storage.output_dir}, "
            f"temp_root={self.storage.temp_root})"
        )
