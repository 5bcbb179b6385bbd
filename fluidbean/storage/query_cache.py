from collections import OrderedDict
from typing import Any, Dict, List, Optional

from fluidbean.log import get_logger
from fluidbean.storage.sql_helper import keeps_cache

logger = get_logger(__name__)


class QueryCache:
    """
    Result cache for the writer's read queries.

    Entries are grouped by tag (a bean type or link table name) and
    keyed by the query's (conditions, SQL, bindings). The whole cache is
    dropped as soon as the adapter announces any statement that does not
    end with the keep-cache sentinel: there is no dependency tracking.
    """

    def __init__(self, adapter: Any = None, max_per_tag: int = 40, enabled: bool = True):
        self.enabled = enabled
        self.max_per_tag = max_per_tag
        self._entries: Dict[str, "OrderedDict[str, List[Dict[str, Any]]]"] = {}
        if adapter is not None:
            adapter.on("sql_exec", self.on_sql_exec)

    def on_sql_exec(self, event: str, adapter: Any) -> None:
        if not self.enabled:
            return
        if not keeps_cache(adapter.get_sql()):
            self.flush()

    def get(self, tag: str, key: str) -> Optional[List[Dict[str, Any]]]:
        if not self.enabled:
            return None
        rows = self._entries.get(tag, {}).get(key)
        if rows is None:
            return None
        return [dict(row) for row in rows]

    def put(self, tag: str, key: str, rows: List[Dict[str, Any]]) -> None:
        if not self.enabled:
            return
        bucket = self._entries.setdefault(tag, OrderedDict())
        if key not in bucket and len(bucket) >= self.max_per_tag:
            bucket.popitem(last=False)
        bucket[key] = [dict(row) for row in rows]

    def flush(self) -> None:
        if self._entries:
            self._entries.clear()

    def size(self, tag: Optional[str] = None) -> int:
        if tag is not None:
            return len(self._entries.get(tag, {}))
        return sum(len(bucket) for bucket in self._entries.values())
