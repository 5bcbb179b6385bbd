# ==============================================
# FluidBean — bean-centric ORM with a fluid schema
# ==============================================
#
# Package Structure:
#
# fluidbean/
# ├── normalization/    # Value profiling and naming rules
# ├── bean/             # Bean entity, graph import (Cooker)
# ├── storage/          # Drivers, Adapter, SQL writers, Migrator, cache
# ├── core/             # ObjectDatabase, associations, Toolbox, facade
# ├── config.py         # Configuration management
# ├── errors.py         # ValidationError, SQLError, Outcome
# ├── log.py            # structlog setup
# └── cli.py            # Command line entry point
#
# ==============================================

from fluidbean.bean import Bean, Cooker
from fluidbean.config import Config, load_config
from fluidbean.core import FluidBean, Toolbox, setup
from fluidbean.errors import FluidBeanError, Outcome, SQLError, SQLState, ValidationError

__version__ = "0.1.0"

__all__ = [
    "Bean",
    "Config",
    "Cooker",
    "FluidBean",
    "FluidBeanError",
    "Outcome",
    "SQLError",
    "SQLState",
    "Toolbox",
    "ValidationError",
    "load_config",
    "setup",
]
