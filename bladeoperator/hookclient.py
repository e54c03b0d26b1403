"""HTTP client for the fault control server running beside a pod."""

from __future__ import annotations

import logging
import urllib.error
import urllib.request

from bladeoperator.faults import INJECT_PATH, RECOVER_PATH, InjectMessage

logger = logging.getLogger(__name__)

_OK = 200


class HookClientError(Exception):
    """The control server could not be reached or answered with an error."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class HookClient:
    """Sends inject and revoke requests to a control server at host:port."""

    def __init__(self, addr: str, timeout: float = 30.0) -> None:
        self.addr = addr
        self.timeout = timeout
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def _url(self, path: str) -> str:
        return f"http://{self.addr}{path}"

    def _send(self, request: urllib.request.Request) -> str:
        try:
            with self._opener.open(request, timeout=self.timeout) as response:
                status = response.status
                text = response.read().decode("utf-8", "replace")
        except urllib.error.HTTPError as exc:
            status = exc.code
            text = exc.read().decode("utf-8", "replace")
        except OSError as exc:
            raise HookClientError(str(exc)) from exc
        if status != _OK:
            raise HookClientError(text, status)
        return text

    def inject_fault(self, message: InjectMessage) -> str:
        """Activate a fault rule; returns the server's reply."""
        logger.info("inject fault: %s", message)
        request = urllib.request.Request(
            self._url(INJECT_PATH),
            data=message.to_json().encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        result = self._send(request)
        logger.info("inject response is %s", result)
        return result

    def revoke(self) -> str:
        """Clear all fault rules; returns the server's reply."""
        request = urllib.request.Request(
            self._url(RECOVER_PATH),
            method="GET",
            headers={"Content-Type": "application/json"},
        )
        result = self._send(request)
        logger.info("revoke fault, response is %s", result)
        return result