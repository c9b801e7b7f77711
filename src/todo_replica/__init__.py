"""Todo replica layer.

Local, identity-scoped mirror of a remote task/project document store.
Keeps an in-memory replica consistent with confirmed remote writes and
maintains a dense project ordering under single-item moves.
"""

__version__ = "0.1.0"
