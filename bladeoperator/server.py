"""HTTP control server that activates and clears file-system fault rules."""

from __future__ import annotations

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from bladeoperator.faults import INJECT_PATH, RECOVER_PATH, FaultRegistry, InjectMessage

logger = logging.getLogger(__name__)

_OK = 200
_BAD_REQUEST = 400
_NOT_FOUND = 404


def _parse_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"address {addr!r} has no port")
    return host.strip("[]"), int(port)


class HookServer:
    """Serves the inject and recover endpoints over a fault registry."""

    def __init__(self, addr: str, registry: FaultRegistry | None = None) -> None:
        self.addr = addr
        self.registry = FaultRegistry() if registry is None else registry
        self._server: ThreadingHTTPServer | None = None
        self._serving = False
        self._lock = threading.Lock()

    def handle_inject(self, body: bytes | str) -> tuple[int, str]:
        """Store the rule in the body for each of its methods."""
        try:
            message = InjectMessage.from_json(body)
        except ValueError as exc:
            logger.error("cannot decode request message: %s", exc)
            return _BAD_REQUEST, "Cannot Decode Request Message\n"
        logger.info("inject fault: %s", message)
        self.registry.inject(message)
        return _OK, "success"

    def handle_recover(self) -> tuple[int, str]:
        """Clear every fault rule on the default hook points."""
        logger.info("recover all fault")
        self.registry.recover()
        return _OK, "success"

    def _ensure_server(self) -> ThreadingHTTPServer:
        with self._lock:
            if self._server is None:
                self._server = ThreadingHTTPServer(_parse_addr(self.addr), _make_handler(self))
            return self._server

    @property
    def address(self) -> tuple[str, int]:
        """The bound host and port, binding the socket if needed."""
        host, port = self._ensure_server().server_address[:2]
        return str(host), int(port)

    def serve_forever(self) -> None:
        """Serve requests until shutdown() is called."""
        server = self._ensure_server()
        with self._lock:
            self._serving = True
        server.serve_forever()

    def shutdown(self) -> None:
        """Stop serving and release the socket."""
        with self._lock:
            server, serving = self._server, self._serving
            self._server, self._serving = None, False
        if server is None:
            return
        if serving:
            server.shutdown()
        server.server_close()


def _make_handler(hook_server: HookServer) -> type[BaseHTTPRequestHandler]:
    class _Handler(BaseHTTPRequestHandler):
        def _read_body(self) -> bytes:
            length = int(self.headers.get("Content-Length") or 0)
            return self.rfile.read(length) if length > 0 else b""

        def _dispatch(self) -> None:
            path = urlsplit(self.path).path
            if path == INJECT_PATH:
                status, text = hook_server.handle_inject(self._read_body())
            elif path == RECOVER_PATH:
                status, text = hook_server.handle_recover()
            else:
                status, text = _NOT_FOUND, "404 page not found\n"
            payload = text.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        do_GET = _dispatch
        do_POST = _dispatch
        do_PUT = _dispatch
        do_DELETE = _dispatch
        do_PATCH = _dispatch

        def log_message(self, format: str, *args: object) -> None:
            logger.debug(format, *args)

    return _Handler