"""
Catalog Module

Products synced with the Meta catalog and the intake forms they link to.
"""

from .models.form import Form
from .models.product import Product

__all__ = [
    "Form",
    "Product",
]
