"""
ModemHub API - catch-all Vercel function.

Routes by path (/api/users, /api/product, ...) so a single function can
serve every endpoint behind a rewrite. / lists the available endpoints.
"""

import sys
from pathlib import Path

# Add parent directory to Python path for modemhub package imports
current_dir = Path(__file__).parent
parent_dir = current_dir.parent
sys.path.insert(0, str(parent_dir))

from modemhub.service import build_service
from modemhub.vercel import RouteHandler


class handler(RouteHandler):
    service = build_service()
