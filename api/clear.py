"""
Clears the requests captured by the POST viewer in this process.
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
    route = "clear"
    service = build_service()
