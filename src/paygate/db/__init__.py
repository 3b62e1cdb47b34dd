from .store import SqlUserStore

__all__ = ["SqlUserStore"]
