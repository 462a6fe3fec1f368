from groupchat.store.filters import Comparator, Filter, OrderBy, eq, gt, in_, lt
from groupchat.store.protocol import Store
from groupchat.store.sql import SqlStore, make_store_scope

__all__ = [
    "Comparator",
    "Filter",
    "OrderBy",
    "Store",
    "SqlStore",
    "eq",
    "gt",
    "in_",
    "lt",
    "make_store_scope",
]
