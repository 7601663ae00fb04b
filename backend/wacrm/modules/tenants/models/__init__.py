from .company import Company, WhatsAppConfig

__all__ = [
    "Company",
    "WhatsAppConfig",
]
