from .lead import Lead

__all__ = [
    "Lead",
]
