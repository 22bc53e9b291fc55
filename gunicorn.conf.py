"""Gunicorn configuration for the inward console API."""

import os

wsgi_app = "inward.main:app"

# ASGI app, so every worker must be a uvicorn worker
worker_class = "uvicorn.workers.UvicornWorker"

bind = f"0.0.0.0:{os.getenv('PORT', '10000')}"

# Notification dispatch runs in-process after each response; keep a few workers
workers = int(os.getenv("WEB_CONCURRENCY", "2"))
timeout = int(os.getenv("GUNICORN_TIMEOUT", "120"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
