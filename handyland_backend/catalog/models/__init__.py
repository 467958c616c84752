# catalog/models/__init__.py

from .item import Accessory, CatalogItem, Product

__all__ = [
    "CatalogItem",
    "Product",
    "Accessory",
]
