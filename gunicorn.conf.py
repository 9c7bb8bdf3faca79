"""
Production Server Configuration

Run FastAPI with a Uvicorn worker under Gunicorn.

The dashboard aggregates are held in the worker's memory and rebuilt from
the record store at startup, so a deployment runs exactly one worker:
writes served by one worker would never reach another worker's aggregates.
Scale with async concurrency inside the worker, not with more workers.
"""

import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 120
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "fleetops-api"

# Server mechanics
daemon = False
pidfile = "/tmp/gunicorn.pid"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'


# Hooks
def when_ready(server):
    """Called when server is ready to receive connections."""
    server.log.info("fleetops ready on %s", bind)


def worker_abort(worker):
    """Called when worker receives SIGABRT signal."""
    worker.log.warning("Worker aborted; aggregates will be rebuilt on restart")
