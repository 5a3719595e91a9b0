# =============================================================================
# app/__main__.py - `python -m app`
# =============================================================================

from app.server import main

main()
