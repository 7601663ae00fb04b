"""
Centralized Constants for the WhatsApp CRM backend.
All hardcoded values should be defined here for easy maintenance.
"""

# ============================================
# API TIMEOUTS (in seconds)
# ============================================
TIMEOUT_GRAPH_API = 30.0          # Admin calls (subscriptions, lookups)
TIMEOUT_GRAPH_MESSAGE = 45.0      # Send message calls

# ============================================
# GRAPH API RETRY (admin calls only, sends are never retried)
# ============================================
GRAPH_MAX_RETRY_ATTEMPTS = 3
GRAPH_RETRY_MIN_WAIT_SECONDS = 2
GRAPH_RETRY_MAX_WAIT_SECONDS = 10

# ============================================
# PAGINATION
# ============================================
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500
MAX_CONVERSATION_MESSAGES = 5000  # Upper bound of messages loaded to build the inbox

# ============================================
# AUTO-REPLY
# ============================================
AUTO_REPLY_ID_PREFIX = "autoreply-"
FLOW_TOKEN_PREFIX = "flow_"
FLOW_MESSAGE_VERSION = "3"
DEFAULT_FLOW_CTA = "Fill details"
NOTE_PREVIEW_CHARS = 500          # Max chars of a message copied into lead notes

# ============================================
# DATABASE POOL SETTINGS
# ============================================
DB_POOL_SIZE = 5
DB_MAX_OVERFLOW = 10
DB_POOL_RECYCLE = 300
