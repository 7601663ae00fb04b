"""
Leads Module

Prospects per company. The messaging pipeline only reads leads, creates
ad-originated ones, and appends interaction history; the Kanban CRUD lives
outside this service.
"""

from .models.lead import Lead

__all__ = [
    "Lead",
]
