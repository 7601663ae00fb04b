"""
Lead Constants
Enums for the lead pipeline. Inherit from str so values can be written to
the database and JSON responses without .value conversion.
"""
from enum import Enum


class LeadStage(str, Enum):
    """
    Kanban pipeline stage.

    Flow: NEW → CONTACTED → INTERESTED → NEGOTIATION → CONVERTED
                                                    ↘ LOST
    """
    NEW = "new"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    NEGOTIATION = "negotiation"
    CONVERTED = "converted"
    LOST = "lost"


class LeadStatus(str, Enum):
    """Legacy status mirror kept for older clients."""
    NEW = "new"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    CONVERTED = "converted"
    CLOSED = "closed"
    FOLLOW_UP = "follow-up"
    NOT_INTERESTED = "not-interested"


class LeadSource(str, Enum):
    """Where a lead came from."""
    MANUAL = "manual"              # Created via UI
    BULK_IMPORT = "bulk_import"    # CSV / spreadsheet upload
    WHATSAPP = "whatsapp"          # Organic WhatsApp contact added by an operator
    WHATSAPP_AD = "whatsapp_ad"    # Auto-created from a click-to-WhatsApp ad

