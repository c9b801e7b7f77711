"""Replica cache, ordering, views and session binding."""

from todo_replica.core.cache import EntityTable, ReplicaCache
from todo_replica.core.identity import AuthProvider, Identity, LocalAuthProvider
from todo_replica.core.ordering import OrderChange, ReorderPlan, plan_move, plan_move_to_index, sort_by_order
from todo_replica.core.session import Session, SessionState

__all__ = [
    "AuthProvider",
    "EntityTable",
    "Identity",
    "LocalAuthProvider",
    "OrderChange",
    "ReorderPlan",
    "ReplicaCache",
    "Session",
    "SessionState",
    "plan_move",
    "plan_move_to_index",
    "sort_by_order",
]
