# ==============================================
# Toolbox
# ==============================================
#
# PURPOSE:
#   The set of collaborators one database connection needs, built in
#   one place and handed to every bean (bean.toolbox).
#
#   ┌──────────────────────────────────────────────────────────┐
#   │                        Toolbox                           │
#   │                                                          │
#   │   Config ──► Driver ──► Adapter ──► QueryWriter          │
#   │                            │            │                │
#   │                       QueryCache    Migrator             │
#   │                                         │                │
#   │              ObjectDatabase ◄───────────┘                │
#   │                    │                                     │
#   │            AssociationManager                            │
#   └──────────────────────────────────────────────────────────┘
#
# FUNCTION:
# ---------
# - setup(dsn=None, user=None, password=None, frozen=None,
#         config=None, connection=None) -> Toolbox
#     1. Load config (from .env or passed in); arguments override it
#     2. Configure structlog from config.logging
#     3. Build driver + adapter (connection opens lazily)
#     4. Build cache, writer, migrator, object database, associations
#
# ==============================================

from typing import Any, Optional, Sequence, Union

from fluidbean.config import Config, load_config
from fluidbean.core.association import AssociationManager
from fluidbean.core.oodb import ObjectDatabase
from fluidbean.log import get_logger, setup_logging
from fluidbean.storage.adapter import Adapter
from fluidbean.storage.drivers import create_driver
from fluidbean.storage.migrator import Migrator
from fluidbean.storage.query_cache import QueryCache
from fluidbean.storage.writers import create_writer

logger = get_logger(__name__)


class Toolbox:
    """One connection worth of engine objects."""

    def __init__(self, adapter: Adapter, writer: Any, config: Config):
        self.adapter = adapter
        self.writer = writer
        self.config = config
        self.migrator = Migrator(writer, config.schema)
        self.oodb = ObjectDatabase(writer, config, self.migrator)
        self.oodb.toolbox = self
        self.association = AssociationManager(self)

    @property
    def dialect(self) -> str:
        return self.adapter.dialect

    def close(self) -> None:
        self.adapter.close()


def setup(
    dsn: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
    frozen: Union[bool, Sequence[str], None] = None,
    config: Optional[Config] = None,
    connection: Any = None,
) -> Toolbox:
    """
    Build a toolbox.

    Args:
        dsn: "mysql://host/db", "pgsql://host/db", "sqlite:///file.db",
            "sqlite://:memory:", "cubrid://host/db". Overrides config.
        user: Database user (overrides config)
        password: Database password (overrides config)
        frozen: True or False to freeze or thaw the whole schema, or a
            list of types to chill (overrides config)
        config: Configuration. If None, loads from environment.
        connection: An already open DB-API connection to use

    Returns:
        Toolbox
    """
    config = config or load_config()
    if dsn is not None:
        config.database.dsn = dsn
    if user is not None:
        config.database.user = user
    if password is not None:
        config.database.password = password
    setup_logging(config.logging.level, config.logging.log_format)

    driver = create_driver(config.database.dsn, config.database.user, config.database.password, connection)
    adapter = Adapter(driver, string_only_binding=config.query.string_only_binding)
    cache = QueryCache(adapter, max_per_tag=config.query.cache_size_per_type, enabled=config.query.use_cache)
    writer = create_writer(adapter, cache, config.schema.link_renames)
    toolbox = Toolbox(adapter, writer, config)
    if frozen is not None:
        toolbox.oodb.freeze(frozen)
    logger.info(
        "toolbox_ready",
        dialect=toolbox.dialect,
        frozen=config.schema.frozen,
        chilled=config.schema.chilled,
    )
    return toolbox
