from .lead_repository import LeadRepository

__all__ = [
    "LeadRepository",
]
