"""
Steam Depot Index.

Incrementally builds a depot -> app index from Steam's PICS
product info service.
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
