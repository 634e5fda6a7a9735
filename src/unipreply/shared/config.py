"""
Configuration Module - Load and validate application settings.
==============================================================

Settings come from a YAML file (config/settings.yaml, or the file named
by UNIPREPLY_CONFIG) overlaid with environment variables, including any
set in a .env file.

Environment overrides:
    GEMINI_API_KEY   Gemini API key (required to chat)
    GEMINI_MODEL     Model name
    LOG_LEVEL        Log level
    CATALOG_FILE     Catalog JSON file
    DATA_DIR         Directory holding catalog, institution and scholarship files
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early
load_dotenv()


def _find_project_root() -> Path:
    """Find the project root directory by looking for pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path.cwd()


PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Nested Configuration Models
# ─────────────────────────────────────────────────────────────────────────────


class GenerationConfig(BaseModel):
    """LLM generation settings."""

    model_name: str = "gemini-2.5-flash"
    temperature: float = 0.4
    max_output_tokens: int = 2048
    top_p: float = 0.95
    top_k: int = 40
    open_retries: int = 2


class ResolverConfig(BaseModel):
    """Institution name extraction and catalog resolution settings."""

    max_candidates: int = 3
    min_containment_length: int = 3
    known_short_names: list[str] = Field(
        default_factory=lambda: [
            "yale",
            "brown",
            "harvard",
            "princeton",
            "columbia",
            "cornell",
            "dartmouth",
            "penn",
            "stanford",
            "mit",
            "duke",
            "northwestern",
            "berkeley",
            "ucla",
        ]
    )
    strip_affixes: list[str] = Field(
        default_factory=lambda: ["university of ", " university", " college"]
    )


class FetcherConfig(BaseModel):
    """Record fetching settings."""

    scholarship_keywords: list[str] = Field(
        default_factory=lambda: [
            "scholarship",
            "financial aid",
            "grant",
            "merit",
            "need-based",
            "aid",
            "award",
            "funding",
            "tuition assistance",
            "fellowship",
        ]
    )
    raw_text_snippet_chars: int = 300


class PersonaConfig(BaseModel):
    """Assistant persona settings."""

    assistant_name: str = "UniPreply Advisor"


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class PathsConfig(BaseModel):
    """Data paths configuration."""

    data_dir: str = "data"
    catalog_file: str = "data/catalog.json"
    institutions_file: str = "data/institutions.json"
    scholarships_file: str = "data/scholarships.json"

    def resolve(self, base_path: Path) -> "ResolvedPaths":
        """Resolve paths relative to a base path."""
        return ResolvedPaths(
            data_dir=base_path / self.data_dir,
            catalog_file=base_path / self.catalog_file,
            institutions_file=base_path / self.institutions_file,
            scholarships_file=base_path / self.scholarships_file,
        )


class ResolvedPaths(BaseModel):
    """Resolved absolute paths."""

    data_dir: Path
    catalog_file: Path
    institutions_file: Path
    scholarships_file: Path

    model_config = {"arbitrary_types_allowed": True}


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Class
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Main application settings.

    Loads from:
    1. config/settings.yaml (defaults)
    2. Environment variables

    Environment variables override YAML settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # API Keys (from environment only)
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")

    # Top-level environment overrides
    gemini_model: Optional[str] = Field(default=None, validation_alias="GEMINI_MODEL")
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")
    catalog_file: Optional[str] = Field(default=None, validation_alias="CATALOG_FILE")
    data_dir: Optional[str] = Field(default=None, validation_alias="DATA_DIR")

    # Nested configurations (from YAML)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    persona: PersonaConfig = Field(default_factory=PersonaConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _project_root: Path = PROJECT_ROOT
    _resolved_paths: Optional[ResolvedPaths] = None

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: Any) -> str:
        """Allow empty API key; the chat session reports it when used."""
        if v is None:
            return ""
        return str(v)

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._project_root

    @property
    def resolved_paths(self) -> ResolvedPaths:
        """Get resolved absolute paths, honoring DATA_DIR / CATALOG_FILE overrides."""
        if self._resolved_paths is None:
            paths = self.paths.resolve(self._project_root)
            if self.data_dir:
                data_dir = Path(self.data_dir)
                paths = ResolvedPaths(
                    data_dir=data_dir,
                    catalog_file=data_dir / Path(self.paths.catalog_file).name,
                    institutions_file=data_dir / Path(self.paths.institutions_file).name,
                    scholarships_file=data_dir / Path(self.paths.scholarships_file).name,
                )
            if self.catalog_file:
                paths = paths.model_copy(update={"catalog_file": Path(self.catalog_file)})
            self._resolved_paths = paths
        return self._resolved_paths

    def get_effective_model(self) -> str:
        """Get the effective Gemini model name (env override or config)."""
        if self.gemini_model:
            return self.gemini_model
        return self.generation.model_name

    def get_effective_log_level(self) -> str:
        """Get the effective log level (env override or config)."""
        if self.log_level:
            return self.log_level.upper()
        return self.logging.level.upper()


CONFIG_ENV_VAR = "UNIPREPLY_CONFIG"


def config_file() -> Path:
    """Config file in effect: UNIPREPLY_CONFIG if set, else config/settings.yaml."""
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else DEFAULT_CONFIG_FILE


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """
    Build settings from a YAML file plus the environment.

    A missing or empty file yields the built-in defaults.

    Args:
        config_path: YAML file (default: ``config_file()``)

    Returns:
        Settings instance
    """
    path = Path(config_path) if config_path is not None else config_file()
    values: dict[str, Any] = {}
    if path.exists():
        with open(path, encoding="utf-8") as f:
            values = yaml.safe_load(f) or {}
    return Settings(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the cached settings instance.

    Example:
        >>> get_settings().resolver.max_candidates
        3
    """
    return load_settings()
