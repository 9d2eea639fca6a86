"""
Kusina cache package.

This package hosts the caching layer used by the meal-curation dashboard's
data-access functions, the backend client those functions call, and a small
admin HTTP surface for inspecting the caches. See README.md for usage.
"""

from .__version__ import __version__

__all__ = ["__version__"]
