"""
Schema constants for the document table.

All collections share one physical table; store_name is the collection key.
"""

# =============================================================================
# TABLE NAMES
# =============================================================================

DOCUMENTS_TABLE = "legislative_data"
STORE_NAME_INDEX = "idx_store_name"

# Column names
COL_ID = "id"
COL_STORE_NAME = "store_name"
COL_CONTENT = "content"
COL_UPDATED_AT = "updated_at"


# =============================================================================
# KNOWN STORES
# =============================================================================

# Collections the legislative records frontend reads and writes.
KNOWN_STORES: tuple[str, ...] = (
    "resolutions",
    "ordinances",
    "sessionMinutes",
    "sessionAgendas",
    "committeeReports",
    "legislators",
    "committeeMemberships",
    "terms",
    "sectors",
    "legislativeMeasures",
    "documentTypes",
    "documentStatuses",
    "userAccounts",
    "incomingDocuments",
)

USER_ACCOUNTS_STORE = "userAccounts"

# Longest store name accepted at the API boundary
MAX_STORE_NAME_LENGTH = 128
