# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate all configuration from environment
#   variables / .env file. Provides typed config objects
#   that are threaded through the Toolbox (never read from
#   module globals by the engine itself).
#
# CLASSES:
# --------
# - DatabaseConfig (dataclass)
#     dsn: str               (default "sqlite://:memory:")
#     user: str | None       (default None)
#     password: str | None   (default None)
#
# - SchemaConfig (dataclass)
#     frozen: bool                        (default False)
#     chilled: list[str]                  (default [])
#     dependencies: dict[str, list[str]]  (child type -> parent types)
#     link_renames: dict[str, str]        (link table -> replacement name)
#     beautify: bool                      (default True, ownBookPage -> book_page)
#
# - QueryConfig (dataclass)
#     use_cache: bool              (default True)
#     cache_size_per_type: int     (default 40)
#     string_only_binding: bool    (default False)
#
# - LoggingConfig (dataclass)
#     level: str       (default "INFO")
#     log_format: str  (default "console")
#
# - Config (dataclass)
#     database / schema / query / logging
#
# FUNCTION:
# ---------
# - load_config(env_file=None) -> Config
#     Load .env using python-dotenv, construct Config.
#
# USAGE:
# ------
#   from fluidbean.config import load_config
#   config = load_config()
#   config.schema.dependencies["page"] = ["book"]
#
# ==============================================

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from dotenv import load_dotenv


TRUE_VARIANTS = {"1", "true", "yes", "on"}


@dataclass
class DatabaseConfig:
    """Connection configuration."""
    dsn: str = "sqlite://:memory:"
    user: Optional[str] = None
    password: Optional[str] = None


@dataclass
class SchemaConfig:
    """Fluid/frozen policy and relation bookkeeping."""
    frozen: bool = False
    chilled: List[str] = field(default_factory=list)
    dependencies: Dict[str, List[str]] = field(default_factory=dict)
    link_renames: Dict[str, str] = field(default_factory=dict)
    beautify: bool = True

    def is_dependent(self, child_type: str, parent_type: str) -> bool:
        """True if rows of `child_type` die together with their `parent_type` owner."""
        return parent_type in self.dependencies.get(child_type, [])


@dataclass
class QueryConfig:
    """Writer cache and adapter binding behaviour."""
    use_cache: bool = True
    cache_size_per_type: int = 40
    string_only_binding: bool = False


@dataclass
class LoggingConfig:
    """structlog configuration."""
    level: str = "INFO"
    log_format: str = "console"


@dataclass
class Config:
    """Main configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    schema: SchemaConfig = field(default_factory=SchemaConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in TRUE_VARIANTS


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config(env_file: Union[str, Path, None] = None) -> Config:
    """
    Load configuration from environment variables / .env file.

    Args:
        env_file: Optional path to a .env file. Defaults to ./.env

    Returns:
        Config: A fresh configuration object
    """
    env_path = Path(env_file) if env_file else Path.cwd() / ".env"
    load_dotenv(dotenv_path=env_path)

    database = DatabaseConfig(
        dsn=os.getenv("FLUIDBEAN_DSN", "sqlite://:memory:"),
        user=os.getenv("FLUIDBEAN_USER") or None,
        password=os.getenv("FLUIDBEAN_PASSWORD") or None,
    )

    schema = SchemaConfig(
        frozen=_env_flag("FLUIDBEAN_FROZEN", "false"),
        chilled=_env_list("FLUIDBEAN_CHILLED"),
    )

    query = QueryConfig(
        use_cache=_env_flag("FLUIDBEAN_USE_CACHE", "true"),
        cache_size_per_type=int(os.getenv("FLUIDBEAN_CACHE_SIZE", "40")),
        string_only_binding=_env_flag("FLUIDBEAN_STRING_ONLY_BINDING", "false"),
    )

    logging_config = LoggingConfig(
        level=os.getenv("FLUIDBEAN_LOG_LEVEL", "INFO"),
        log_format=os.getenv("FLUIDBEAN_LOG_FORMAT", "console"),
    )

    return Config(
        database=database,
        schema=schema,
        query=query,
        logging=logging_config,
    )
