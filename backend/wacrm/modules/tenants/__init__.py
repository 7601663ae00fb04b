"""
Tenants Module

Companies and their WhatsApp business-account configurations.
Plain company CRUD is handled elsewhere; this module only exposes the
lookups the messaging pipeline depends on.
"""

from .models.company import Company, WhatsAppConfig

__all__ = [
    "Company",
    "WhatsAppConfig",
]
