# ==============================================
# CORE
# ==============================================
#
# Modules:
# --------
# - oodb.py         → ObjectDatabase (dispense/load/store/trash beans)
# - association.py  → AssociationManager (link tables)
# - toolbox.py      → Toolbox + setup()
# - facade.py       → FluidBean (user-facing API)
#
# ==============================================

from .association import AssociationManager
from .facade import FluidBean
from .oodb import ObjectDatabase, process_groups
from .toolbox import Toolbox, setup

__all__ = [
    "AssociationManager",
    "FluidBean",
    "ObjectDatabase",
    "Toolbox",
    "process_groups",
    "setup",
]
