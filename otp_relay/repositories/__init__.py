"""Repositories for product, account and grant lookups."""

from .base import ProductDirectory
from .loader import load_directory
from .memory import InMemoryProductDirectory

__all__ = ["ProductDirectory", "InMemoryProductDirectory", "load_directory"]
