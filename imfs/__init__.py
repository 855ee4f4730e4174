"""An in-memory file system with per-cage descriptor tables, and a loader for host folders."""

__version__ = "0.1.0"
__all__ = ["filesystem", "host"]