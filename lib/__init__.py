# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - database.py: Database client lifecycle (lazy engine, connect/disconnect)
# - utils.py: Shared utilities (error base class, secret masking)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.database import DatabaseClient, DatabaseClientError
from lib.utils import ApplicationError, mask_secret

__all__ = [
    # Database
    "DatabaseClient",
    "DatabaseClientError",
    # Utils
    "ApplicationError",
    "mask_secret",
]
