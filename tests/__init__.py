# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the service scaffold:
# - test_config.py: Environment loading and validation
# - test_database.py: Database client lifecycle against SQLite
# - test_exceptions.py: JSON error envelope and handlers
# - test_middleware.py: CORS, body size limit, request logging
# - test_health.py: Health, readiness and liveness endpoints
# - test_server.py: Startup, graceful shutdown, signals
#
# Run tests with: pytest
# =============================================================================
