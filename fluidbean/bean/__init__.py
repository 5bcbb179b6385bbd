# ==============================================
# BEAN
# ==============================================
#
# Modules:
# --------
# - bean.py   → Bean (dynamic record with change tracking)
# - graph.py  → Cooker (nested dicts -> bean graph)
#
# ==============================================

from .bean import Bean
from .graph import Cooker

__all__ = ["Bean", "Cooker"]
