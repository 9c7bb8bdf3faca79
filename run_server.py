#!/usr/bin/env python
"""
Server Entry Point

    python run_server.py --dev         # uvicorn with auto-reload
    python run_server.py               # uvicorn, one worker
    python run_server.py --gunicorn    # gunicorn with gunicorn.conf.py

Host and port default to API_HOST / API_PORT. There is never more than one
worker process: the dashboard aggregates live in memory.
"""

import argparse
import os
import subprocess

import uvicorn

from fleetops.config import get_settings

APP = "fleetops.main:app"


def run_dev_server(host: str, port: int):
    uvicorn.run(
        APP,
        host=host,
        port=port,
        reload=True,
        reload_dirs=["fleetops"],
        log_level="debug",
    )


def run_prod_server(host: str, port: int):
    uvicorn.run(
        APP,
        host=host,
        port=port,
        workers=1,
        log_level=get_settings().monitoring.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn(host: str, port: int):
    os.environ.setdefault("BIND", f"{host}:{port}")
    subprocess.run(["gunicorn", APP, "-c", "gunicorn.conf.py"], check=True)


if __name__ == "__main__":
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Fleet Operations API Server")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dev", action="store_true", help="Auto-reload on source changes")
    mode.add_argument("--gunicorn", action="store_true", help="Serve under Gunicorn")
    parser.add_argument("--host", default=settings.api_host)
    parser.add_argument("--port", type=int, default=settings.api_port)
    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.host, args.port)
    elif args.gunicorn:
        run_gunicorn(args.host, args.port)
    else:
        run_prod_server(args.host, args.port)
