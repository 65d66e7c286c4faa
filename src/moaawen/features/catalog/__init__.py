"""
Catalog package: read-only variant lookup for the order engine.
"""

from .service import CatalogLookup, CatalogService

__all__ = ['CatalogLookup', 'CatalogService']
