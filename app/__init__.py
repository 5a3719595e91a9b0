# =============================================================================
# app/ - FastAPI Application Package
# =============================================================================
# This package contains the HTTP service:
# - config.py: Environment variable loading and settings
# - main.py: Application assembly (middleware, routes, error handlers)
# - middleware.py: CORS, body size limit and request logging stages
# - exceptions.py: HttpError types and the terminal error handler
# - server.py: Process entry point, startup and graceful shutdown
# - routers/: API endpoint definitions organized by feature
#
# The app layer is thin - it handles HTTP concerns and delegates
# resource management to the lib/ package.
# =============================================================================
