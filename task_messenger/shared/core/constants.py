"""
Centralized Constants for the Task Messenger.
All hardcoded limits should be defined here for easy maintenance.
"""

# ============================================
# TEMPLATE / RENDERING LIMITS
# ============================================
MAX_TEMPLATE_LENGTH = 2000    # Max chars in a template body
MAX_LINK_LENGTH = 1024        # Max chars in a link URL
UNKNOWN_TASK_KEY = "UNKNOWN"  # Sentinel key for unparseable task types

# ============================================
# PROVIDER (GLASSIX) API
# ============================================
GLASSIX_MESSAGES_ENDPOINT = "/api/messages"
GLASSIX_TEMPLATE_ENDPOINT = "/api/messages/template"
GLASSIX_PROTOCOLS_ENDPOINT = "/v1/protocols/send"
GLASSIX_CONVERSATION_URL = "https://app.glassix.com/conversations/{provider_id}"
RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})
MAX_RETRY_ATTEMPTS_CEILING = 5  # Hard ceiling to bound total wait
RETRY_JITTER_MS = 100           # Jitter is uniform in [0, RETRY_JITTER_MS)
MAX_ERROR_LENGTH = 500          # Max chars of an error surfaced to callers
DRY_RUN_PROVIDER_ID = "dry-run"

# ============================================
# CRM WRITE-BACK LIMITS
# ============================================
MAX_AUDIT_LENGTH = 32000     # Long text area limit (32768) minus margin
MAX_AUDIT_LINES = 100        # First line + "..." + last 98 lines
MAX_FAILURE_REASON = 1000    # Failure_Reason__c length

# ============================================
# FILE PROCESSING
# ============================================
EXCEL_EXTENSIONS = {".xlsx", ".xlsm", ".xls"}
CSV_EXTENSIONS = {".csv"}
