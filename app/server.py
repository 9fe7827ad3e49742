"""Threaded WSGI server with a bounded graceful shutdown."""

import threading
import time
from typing import Optional

from loguru import logger
from werkzeug.serving import ThreadedWSGIServer

# Seconds allowed for in-flight requests to finish on shutdown
SHUTDOWN_GRACE = 5.0


class DrainingWSGIServer(ThreadedWSGIServer):
    """Threaded server that counts requests still being handled."""

    def __init__(self, host: str, port: int, app):
        super().__init__(host, port, app)
        self._in_flight = 0
        self._idle = threading.Condition()

    def process_request(self, request, client_address):
        # Counted before the handler thread starts so shutdown cannot miss it
        with self._idle:
            self._in_flight += 1
        try:
            super().process_request(request, client_address)
        except Exception:
            self._finished()
            raise

    def process_request_thread(self, request, client_address):
        try:
            super().process_request_thread(request, client_address)
        finally:
            self._finished()

    def _finished(self):
        with self._idle:
            self._in_flight -= 1
            self._idle.notify_all()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def wait_idle(self, timeout: float) -> bool:
        """Wait until no request is being handled. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)


class HttpServer:
    """Runs a WSGI app on a background thread."""

    def __init__(self, app, host: str, port: int):
        self._server = DrainingWSGIServer(host, port, app)
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self._server.server_port

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._server.serve_forever, name="bell-http", daemon=True)
        self._thread.start()

    def shutdown(self, grace: float = SHUTDOWN_GRACE) -> bool:
        """
        Stop accepting connections and wait up to `grace` seconds for
        in-flight requests to finish.

        Returns False if requests were still running when the grace period
        ran out. Those handler threads are daemons and die with the process.
        """
        deadline = time.monotonic() + grace

        if self._thread is not None:
            stopper = threading.Thread(target=self._server.shutdown, name="bell-http-shutdown", daemon=True)
            stopper.start()
            stopper.join(grace)
            if stopper.is_alive():
                logger.error("HTTP server did not stop accepting connections within {}s", grace)
                return False
            self._thread = None

        drained = self._server.wait_idle(max(0.0, deadline - time.monotonic()))
        self._server.server_close()
        if not drained:
            logger.error("{} requests still running after {}s", self._server.in_flight, grace)
        return drained
