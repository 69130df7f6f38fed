"""
ModemHub - serverless request handlers for the BG95 device demo.

In-memory user registry, request echo/capture endpoints and product
status updates, deployable as Vercel Python functions or a local
FastAPI app.
"""

__version__ = "0.1.0"
