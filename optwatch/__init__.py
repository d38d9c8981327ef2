"""Argument parsing from help messages, and file system change notification."""

__version__ = "0.1.0"
__all__ = ["patterns", "parser", "watcher"]