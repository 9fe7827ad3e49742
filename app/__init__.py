"""Bell web front end Flask application factory."""

import ipaddress
import os
import time

from flask import Flask, g, request
from loguru import logger

from bell import WEB_DIST_DIR


def client_ip(req) -> str:
    """
    Best guess at the client address.

    Uses the first global unicast address in X-Forwarded-For, then the
    socket peer, then "localhost".
    """
    for candidate in req.headers.get("X-Forwarded-For", "").split(","):
        candidate = candidate.strip()
        try:
            ip = ipaddress.ip_address(candidate)
        except ValueError:
            continue
        if ip.is_multicast or ip.is_unspecified or ip.is_loopback or ip.is_link_local:
            continue
        if ip == ipaddress.IPv4Address("255.255.255.255"):
            continue
        return candidate

    return req.remote_addr or "localhost"


def create_app(static_dir=WEB_DIST_DIR, config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__, static_folder=None)

    # Flask resolves relative directories against app.root_path
    app.config["STATIC_DIR"] = os.path.abspath(static_dir)

    # Override with custom config if provided
    if config:
        app.config.update(config)

    @app.before_request
    def _start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response):
        started = g.get("request_started", time.perf_counter())
        logger.bind(
            ip=client_ip(request),
            method=request.method,
            uri=request.full_path.rstrip("?"),
            status=response.status_code,
            cost=f"{(time.perf_counter() - started) * 1000:.2f}ms",
        ).info("Handler called")
        return response

    # Register blueprints
    from app.routes import main_bp
    app.register_blueprint(main_bp)

    return app
