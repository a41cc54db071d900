"""Live preview server: serves an HTML file and pushes updates over WebSocket."""

from __future__ import annotations

import base64
import hashlib
import itertools
import json
import os
import re
import socket
import socketserver
import struct
import sys
import threading
import webbrowser
from dataclasses import dataclass, field
from pathlib import Path

__all__ = [
    "LIVE_CLIENT_JS",
    "LiveServer",
    "serve",
    "inject_live_script",
    "hash_content",
    "compute_ws_accept",
    "encode_ws_text_frame",
    "guess_mime",
    "percent_decode",
    "parse_request_path",
]

LIVE_CLIENT_JS = r"""
<script data-sfhtml-live>
(function(){
  var ws, oldHTML = document.documentElement.outerHTML;
  function connect(){
    var proto = location.protocol === 'https:' ? 'wss' : 'ws';
    ws = new WebSocket(proto + '://' + location.host + '/__sfhtml_ws');
    ws.onmessage = function(e){
      try {
        var msg = JSON.parse(e.data);
        if (msg.type === 'full') {
          document.open();
          document.write(msg.html);
          document.close();
        } else if (msg.type === 'patch') {
          applyPatch(msg);
        } else if (msg.type === 'reload') {
          location.reload();
        }
      } catch(err) { location.reload(); }
    };
    ws.onclose = function(){ setTimeout(connect, 1000); };
    ws.onerror = function(){ ws.close(); };
  }
  function applyPatch(msg){
    if (msg.selector && msg.html) {
      var el = document.querySelector(msg.selector);
      if (el) { el.outerHTML = msg.html; return; }
    }
    if (msg.eval) {
      try { (0, eval)(msg.eval); return; } catch(e){}
    }
    location.reload();
  }
  connect();
})();
</script>
"""

_WS_MAGIC = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
_REQUEST_LIMIT = 4096
_READ_TIMEOUT = 5.0
_POLL_INTERVAL = 0.25
_DEBOUNCE = 0.1

_STATUS_TEXT = {200: "OK", 403: "Forbidden", 404: "Not Found"}

_MIME_TYPES = {
    "html": "text/html; charset=utf-8",
    "htm": "text/html; charset=utf-8",
    "css": "text/css; charset=utf-8",
    "js": "application/javascript; charset=utf-8",
    "mjs": "application/javascript; charset=utf-8",
    "json": "application/json; charset=utf-8",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    "woff2": "font/woff2",
    "woff": "font/woff",
    "ttf": "font/ttf",
    "wasm": "application/wasm",
}

_BODY_CLOSE = re.compile(r"</body>", re.IGNORECASE)

_client_ids = itertools.count(1)
_client_id_lock = threading.Lock()


def _log(message: str) -> None:
    print(message, file=sys.stderr)


def _next_client_id() -> int:
    with _client_id_lock:
        return next(_client_ids)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def inject_live_script(html: str) -> str:
    """Insert the live-reload client before the last ``</body>``, or append it."""
    last = None
    for last in _BODY_CLOSE.finditer(html):
        pass
    if last is None:
        return f"{html}\n{LIVE_CLIENT_JS}"
    pos = last.start()
    return html[:pos] + LIVE_CLIENT_JS + html[pos:]


def hash_content(content: str) -> str:
    """Return the hex SHA-256 digest of ``content``."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def compute_ws_accept(key: str) -> str:
    """Return the Sec-WebSocket-Accept value for a client key."""
    digest = hashlib.sha1(f"{key}{_WS_MAGIC}".encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def encode_ws_text_frame(text: str) -> bytes:
    """Encode ``text`` as a single unmasked, final WebSocket text frame."""
    payload = text.encode("utf-8")
    length = len(payload)
    if length < 126:
        head = struct.pack("!BB", 0x81, length)
    elif length <= 0xFFFF:
        head = struct.pack("!BBH", 0x81, 126, length)
    else:
        head = struct.pack("!BBQ", 0x81, 127, length)
    return head + payload


def guess_mime(path) -> str:
    """Return a Content-Type for ``path`` based on its extension."""
    extension = Path(str(path)).suffix[1:]
    return _MIME_TYPES.get(extension, "application/octet-stream")


def _hex_val(byte: int) -> int:
    char = chr(byte)
    if "0" <= char <= "9":
        return byte - ord("0")
    if "a" <= char <= "f":
        return byte - ord("a") + 10
    if "A" <= char <= "F":
        return byte - ord("A") + 10
    return 0


def percent_decode(s: str) -> str:
    """Decode ``%XX`` escapes byte by byte; invalid digits count as zero."""
    data = iter(s.encode("utf-8"))
    out = []
    for byte in data:
        if byte == ord("%"):
            high = next(data, ord("0"))
            low = next(data, ord("0"))
            out.append(chr(_hex_val(high) * 16 + _hex_val(low)))
        else:
            out.append(chr(byte))
    return "".join(out)


def parse_request_path(request: str) -> str:
    """Return the target of an HTTP request line, or ``/``."""
    if not request:
        return "/"
    first = request.split("\n", 1)[0]
    parts = first.split()
    return parts[1] if len(parts) > 1 else "/"


def _send_response(sock: socket.socket, status: int, content_type: str, body: bytes) -> None:
    head = (
        f"HTTP/1.1 {status} {_STATUS_TEXT.get(status, 'Error')}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "Cache-Control: no-cache\r\n\r\n"
    )
    sock.sendall(head.encode("ascii") + body)


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class _WsClient:
    id: int
    sock: socket.socket
    closed: threading.Event = field(default_factory=threading.Event)


class _Handler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        self.server.live._handle_connection(self.request)


class _TCPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, address, live: LiveServer) -> None:
        self.live = live
        super().__init__(address, _Handler)


class LiveServer:
    """HTTP server for one HTML file, with a file watcher and WebSocket push."""

    def __init__(self, file, port: int = 8080, inject_live: bool = True) -> None:
        try:
            self._path = Path(file).resolve(strict=True)
        except OSError as exc:
            raise FileNotFoundError(f"File not found: {file}") from exc
        self._base_dir = self._path.parent
        self._inject = inject_live

        raw = self._path.read_bytes().decode("utf-8")
        self._current_html = inject_live_script(raw) if inject_live else raw
        self._current_hash = hash_content(raw)

        self._lock = threading.Lock()
        self._clients: list[_WsClient] = []
        self._stop = threading.Event()
        self._started = threading.Event()
        self._watcher: threading.Thread | None = None

        try:
            self._server = _TCPServer(("0.0.0.0", port), self)
        except OSError as exc:
            raise OSError(f"Cannot bind to port {port}") from exc

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    @property
    def file_path(self) -> Path:
        return self._path

    @property
    def url(self) -> str:
        return f"http://localhost:{self.port}/{self._path.name}"

    @property
    def inject_live(self) -> bool:
        return self._inject

    @property
    def current_html(self) -> str:
        with self._lock:
            return self._current_html

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def handle_file_change(self) -> bool:
        """Reload the file; if it changed, push it to every client. Return whether it changed."""
        with self._lock:
            try:
                raw = self._path.read_bytes().decode("utf-8")
            except (OSError, UnicodeDecodeError):
                return False
            new_hash = hash_content(raw)
            if new_hash == self._current_hash:
                return False

            served = inject_live_script(raw) if self._inject else raw
            _log(f"  [live] file changed, pushing to {len(self._clients)} client(s)")
            frame = encode_ws_text_frame(json.dumps({"type": "full", "html": served}))

            alive = []
            for client in self._clients:
                try:
                    client.sock.sendall(frame)
                except OSError:
                    _log(f"  [live] client {client.id} disconnected")
                    client.closed.set()
                else:
                    alive.append(client)
            self._clients = alive
            self._current_html = served
            self._current_hash = new_hash
            return True

    def serve_forever(self) -> None:
        """Watch the file and serve requests until :meth:`shutdown` is called."""
        self._started.set()
        if self._watcher is None:
            self._watcher = threading.Thread(target=self._watch, daemon=True)
            self._watcher.start()
        self._server.serve_forever()

    def shutdown(self) -> None:
        """Stop serving, stop watching and drop all clients."""
        self._stop.set()
        if self._started.is_set():
            self._server.shutdown()
        self._server.server_close()
        with self._lock:
            for client in self._clients:
                client.closed.set()
            self._clients = []

    # -- internals ---------------------------------------------------------

    def _stat(self):
        try:
            st = os.stat(self._path)
        except OSError:
            return None
        return st.st_mtime_ns, st.st_size

    def _watch(self) -> None:
        last = self._stat()
        while not self._stop.wait(_POLL_INTERVAL):
            current = self._stat()
            if current == last:
                continue
            last = current
            if current is None:
                continue
            self._stop.wait(_DEBOUNCE)
            last = self._stat()
            self.handle_file_change()

    def _handle_connection(self, sock: socket.socket) -> None:
        sock.settimeout(_READ_TIMEOUT)
        try:
            data = sock.recv(_REQUEST_LIMIT)
        except OSError:
            return
        request = data.decode("utf-8", errors="replace")
        try:
            if "Upgrade: websocket" in request or "upgrade: websocket" in request:
                self._handle_websocket(sock, request)
            else:
                self._handle_http(sock, parse_request_path(request))
        except OSError:
            pass

    def _handle_http(self, sock: socket.socket, path: str) -> None:
        clean = percent_decode(path).lstrip("/")
        if not clean or clean == self._path.name:
            _send_response(sock, 200, "text/html; charset=utf-8", self.current_html.encode("utf-8"))
            return

        try:
            target = (self._base_dir / clean).resolve(strict=True)
        except (OSError, RuntimeError, ValueError):
            _send_response(sock, 404, "text/plain", b"Not Found")
            return
        if not target.is_relative_to(self._base_dir):
            _send_response(sock, 403, "text/plain", b"Forbidden")
            return
        if target.is_file():
            _send_response(sock, 200, guess_mime(target), target.read_bytes())
        else:
            _send_response(sock, 404, "text/plain", b"Not Found")

    def _handle_websocket(self, sock: socket.socket, request: str) -> None:
        key = ""
        for line in request.splitlines():
            if line.lower().startswith("sec-websocket-key:"):
                key = line.split(":")[1].strip()
                break
        response = (
            "HTTP/1.1 101 Switching Protocols\r\n"
            "Upgrade: websocket\r\n"
            "Connection: Upgrade\r\n"
            f"Sec-WebSocket-Accept: {compute_ws_accept(key)}\r\n\r\n"
        )
        sock.sendall(response.encode("ascii"))

        client = _WsClient(id=_next_client_id(), sock=sock)
        with self._lock:
            if self._stop.is_set():
                return
            self._clients.append(client)
            _log(f"  [live] client {client.id} connected ({len(self._clients)} total)")
        client.closed.wait()


def serve(file, port: int = 8080, open_browser: bool = False, inject_live: bool = False) -> None:
    """Serve ``file`` with live updates until interrupted."""
    server = LiveServer(file, port, inject_live)
    _log(f"sfhtml serve: {server.url}")
    _log(f"  Watching: {server.file_path}")
    _log(f"  Live reload: {'enabled' if inject_live else 'disabled (use --live)'}")
    _log("  Press Ctrl+C to stop")
    if open_browser:
        try:
            webbrowser.open(server.url)
        except webbrowser.Error:
            pass
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.shutdown()