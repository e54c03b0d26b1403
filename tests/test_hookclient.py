import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from bladeoperator.faults import InjectMessage
from bladeoperator.hookclient import HookClient, HookClientError


class StubHandler(BaseHTTPRequestHandler):
    def _handle(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append(
            (self.command, self.path, self.headers.get("Content-Type"), body)
        )
        payload = self.server.reply_body.encode()
        self.send_response(self.server.reply_status)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = _handle
    do_POST = _handle

    def log_message(self, format, *args):
        pass


@pytest.fixture
def stub():
    server = ThreadingHTTPServer(("127.0.0.1", 0), StubHandler)
    server.requests = []
    server.reply_status = 200
    server.reply_body = "success"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
    thread.join(timeout=5)


def client_for(server):
    host, port = server.server_address[:2]
    return HookClient(f"{host}:{port}", timeout=5)


def test_inject_fault_posts_json(stub):
    message = InjectMessage(["read"], path="/data", errno=5)
    assert client_for(stub).inject_fault(message) == "success"
    method, path, content_type, body = stub.requests[0]
    assert (method, path, content_type) == ("POST", "/inject", "application/json")
    assert InjectMessage.from_json(body) == message
    assert json.loads(body)["methods"] == ["read"]


def test_revoke_gets_recover(stub):
    assert client_for(stub).revoke() == "success"
    assert stub.requests[0][:3] == ("GET", "/recover", "application/json")


def test_error_status_raises_with_body(stub):
    stub.reply_status = 500
    stub.reply_body = "boom"
    with pytest.raises(HookClientError) as info:
        client_for(stub).inject_fault(InjectMessage(["read"]))
    assert str(info.value) == "boom"
    assert info.value.status == 500


def test_non_200_success_status_is_an_error(stub):
    stub.reply_status = 202
    with pytest.raises(HookClientError) as info:
        client_for(stub).revoke()
    assert info.value.status == 202


def test_unreachable_server_raises():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    client = HookClient(f"127.0.0.1:{port}", timeout=2)
    with pytest.raises(HookClientError) as info:
        client.revoke()
    assert info.value.status is None