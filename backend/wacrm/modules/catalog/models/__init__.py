from .form import Form
from .product import Product

__all__ = [
    "Form",
    "Product",
]
