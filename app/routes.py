"""Flask routes for the bell web front end."""

import os

from flask import Blueprint, Response, current_app, send_file, send_from_directory
from loguru import logger
from werkzeug.security import safe_join

main_bp = Blueprint("main", __name__)

INDEX_FILE = "index.html"


@main_bp.route("/api/v1/healthz", methods=["GET"])
def healthz():
    """Health check, independent of schedule state."""
    return Response("OK", status=200, mimetype="text/plain")


@main_bp.route("/", defaults={"path": ""})
@main_bp.route("/<path:path>")
def static_files(path):
    """
    Serve the built web UI.

    Unknown paths fall back to index.html so client-side routes work.
    """
    static_dir = current_app.config["STATIC_DIR"]
    logger.debug("Opening: /{}", path)

    target = safe_join(static_dir, path) if path else None
    if target and os.path.isfile(target):
        return send_from_directory(static_dir, path)
    if target and os.path.isfile(os.path.join(target, INDEX_FILE)):
        return send_from_directory(static_dir, f"{path.rstrip('/')}/{INDEX_FILE}")

    index = os.path.join(static_dir, INDEX_FILE)
    if not os.path.isfile(index):
        logger.error("Could not read {}", index)
        return Response(status=404)

    return send_file(index, mimetype="text/html")
