"""
HTML pages for the request viewer and the POST inbox.
"""

import html
import json
from datetime import datetime
from typing import Any, Dict, List

from modemhub.models import CapturedRequest

VIEWER_STYLE = (
    "body{font-family:system-ui,Segoe UI,Roboto,Arial;margin:20px}"
    "pre{background:#f5f5f5;padding:12px;border-radius:6px}"
)

INBOX_STYLE = """
        body { font-family: Arial, sans-serif; margin: 20px; background: #f5f5f5; }
        .container { max-width: 1200px; margin: 0 auto; background: white; padding: 20px; border-radius: 10px; }
        .header { text-align: center; margin-bottom: 30px; }
        .stats { background: #e3f2fd; padding: 15px; border-radius: 5px; margin-bottom: 20px; }
        .request { border: 1px solid #ddd; margin: 15px 0; padding: 15px; border-radius: 5px; background: #fafafa; }
        .request-header { background: #007cba; color: white; padding: 10px; margin: -15px -15px 15px -15px; border-radius: 5px 5px 0 0; }
        .request-id { font-weight: bold; }
        .timestamp { color: #666; font-size: 0.9em; }
        .body { background: #f8f9fa; padding: 10px; border-radius: 3px; margin-top: 10px; }
        .empty { text-align: center; color: #666; padding: 40px; }
        .clear-btn { background: #dc3545; color: white; padding: 10px 20px; border: none; border-radius: 5px; cursor: pointer; margin: 10px; }
        .clear-btn:hover { background: #c82333; }
        pre { white-space: pre-wrap; word-wrap: break-word; }
"""

CLEAR_SCRIPT = """
    <script>
        function clearRequests() {
            if (confirm('Are you sure you want to clear all requests?')) {
                fetch('/api/clear', { method: 'POST' })
                    .then(() => location.reload());
            }
        }
    </script>"""


def escape(value: Any) -> str:
    return html.escape(str(value), quote=True)


def pretty(value: Any) -> str:
    """Pretty JSON for dicts/lists, plain text for everything else."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, default=str)
    if value is None:
        return ""
    return str(value)


def render_request_view(method: str, query: Dict[str, Any], headers: Dict[str, str], body: Any) -> str:
    """Page echoing the method, query, headers and body of a request."""
    return f"""<!doctype html>
<html>
<head><meta charset="utf-8"><title>Request viewer</title>
<style>{VIEWER_STYLE}</style>
</head>
<body>
  <h1>Request viewer</h1>
  <p><strong>Method:</strong> {escape(method)}</p>
  <h2>Query</h2><pre>{escape(pretty(query))}</pre>
  <h2>Headers</h2><pre>{escape(pretty(headers))}</pre>
  <h2>Body</h2><pre>{escape(pretty(body))}</pre>
  <hr>
  <p>Tip: use <code>curl</code>, Postman or an HTML form to hit this URL.</p>
</body>
</html>"""


def _format_timestamp(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    except ValueError:
        return timestamp


def _render_entry(entry: CapturedRequest) -> str:
    return f"""
            <div class="request">
                <div class="request-header">
                    <span class="request-id">Request #{entry.id}</span>
                    <span class="timestamp">{escape(_format_timestamp(entry.timestamp))}</span>
                </div>
                <h4>Body:</h4>
                <div class="body">
                    <pre>{escape(pretty(entry.body))}</pre>
                </div>
                <details>
                    <summary>Show Headers</summary>
                    <div class="body">
                        <pre>{escape(pretty(entry.headers))}</pre>
                    </div>
                </details>
            </div>"""


def render_inbox(entries: List[CapturedRequest]) -> str:
    """Inbox page listing captured requests in the order given."""
    if entries:
        clear_button = '<button class="clear-btn" onclick="clearRequests()">Clear All</button>'
        listing = "".join(_render_entry(entry) for entry in entries)
    else:
        clear_button = ""
        listing = (
            '<div class="empty"><h3>No POST requests yet</h3>'
            "<p>Send a POST request to this endpoint to see it here!</p></div>"
        )

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>POST Request Viewer</title>
    <style>{INBOX_STYLE}</style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>POST Request Viewer</h1>
            <p>Simple API to capture and view POST requests</p>
        </div>

        <div class="stats">
            <strong>Total Requests: {len(entries)}</strong>
            {clear_button}
        </div>
{listing}
    </div>
{CLEAR_SCRIPT}
</body>
</html>"""
