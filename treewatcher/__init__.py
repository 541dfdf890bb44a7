"""
treewatcher: recursively watch a directory tree for filesystem changes.

Provides both a CLI and library API for reporting create, delete and modify
events for a root directory and every directory nested beneath it.
"""

__version__ = "0.1.0"
