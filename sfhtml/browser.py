"""Launching a Chromium-family browser and driving it over the DevTools protocol."""

from __future__ import annotations

import http.client
import itertools
import json
import os
import shutil
import socket
import subprocess
import sys
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import websocket

__all__ = [
    "CdpError",
    "BrowserProcess",
    "CdpClient",
    "find_browser",
    "launch_browser",
    "connect_to_port",
    "list_targets",
    "save_session",
    "load_session",
    "remove_session",
    "list_sessions",
]

_LAUNCH_TIMEOUT = 10.0
_CONNECT_TIMEOUT = 5.0
_POLL_INTERVAL = 0.2
_RETRY_DELAY = 0.3

_message_ids = itertools.count(1)
_message_lock = threading.Lock()

_READ_LOGS_JS = r"""
                (function() {
                    if (!window.__sfhtml_logs) return '[]';
                    return JSON.stringify(window.__sfhtml_logs);
                })()
            """

_INSTALL_LOGGER_JS = r"""
                if (!window.__sfhtml_logs) {
                    window.__sfhtml_logs = [];
                    const orig = {};
                    ['log','warn','error','info','debug'].forEach(m => {
                        orig[m] = console[m];
                        console[m] = function() {
                            window.__sfhtml_logs.push({
                                level: m,
                                text: Array.from(arguments).map(a =>
                                    typeof a === 'object' ? JSON.stringify(a) : String(a)
                                ).join(' '),
                                ts: Date.now()
                            });
                            orig[m].apply(console, arguments);
                        };
                    });
                }
                'ok'
            """

_CLICK_JS = """(function() {{
                    var el = document.querySelector({sel});
                    if (!el) return 'not_found';
                    el.click();
                    return 'clicked';
                }})()"""


class CdpError(RuntimeError):
    """Raised when the browser cannot be reached or a CDP command fails."""


@dataclass
class BrowserProcess:
    """A browser started with remote debugging enabled."""

    process: subprocess.Popen
    ws_url: str
    port: int

    @property
    def pid(self) -> int:
        return self.process.pid


def _next_id() -> int:
    with _message_lock:
        return next(_message_ids)


# ---------------------------------------------------------------------------
# Browser detection and launch
# ---------------------------------------------------------------------------


def _absolute_candidates() -> list[Path]:
    if sys.platform == "win32":
        program_files = os.environ.get("ProgramFiles", r"C:\Program Files")
        program_files_x86 = os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")
        local_app_data = os.environ.get("LOCALAPPDATA", "")
        return [
            Path(program_files, r"Google\Chrome\Application\chrome.exe"),
            Path(program_files_x86, r"Google\Chrome\Application\chrome.exe"),
            Path(local_app_data, r"Google\Chrome\Application\chrome.exe"),
            Path(program_files, r"Microsoft\Edge\Application\msedge.exe"),
            Path(program_files_x86, r"Microsoft\Edge\Application\msedge.exe"),
            Path(program_files, r"Chromium\Application\chrome.exe"),
            Path(local_app_data, r"Chromium\Application\chrome.exe"),
        ]
    return [
        Path("/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
        Path("/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge"),
        Path("/Applications/Chromium.app/Contents/MacOS/Chromium"),
    ]


def _path_candidates() -> tuple[str, ...]:
    if sys.platform == "win32":
        return ("chrome.exe", "msedge.exe", "chromium.exe")
    return (
        "google-chrome",
        "google-chrome-stable",
        "chromium",
        "chromium-browser",
        "microsoft-edge",
        "microsoft-edge-stable",
    )


def find_browser() -> Path | None:
    """Return the path of an installed Chrome, Chromium or Edge, if any."""
    for candidate in _absolute_candidates():
        if os.path.exists(candidate):
            return candidate
    for name in _path_candidates():
        found = shutil.which(name)
        if found:
            return Path(found)
    return None


def _temp_profile_dir(port: int) -> Path:
    return Path(tempfile.gettempdir()) / f"sfhtml-cdp-{port}"


def launch_browser(file_url: str, port: int, headless: bool = False) -> BrowserProcess:
    """Start a browser with CDP on ``port`` and wait until a page is debuggable."""
    browser = find_browser()
    if browser is None:
        raise CdpError(
            "No Chrome/Chromium/Edge found. Install one or use --port to connect to an "
            "existing browser.\n"
            "Candidates: google-chrome, chromium, microsoft-edge, chrome.exe, msedge.exe"
        )

    args = [
        f"--remote-debugging-port={port}",
        "--no-first-run",
        "--no-default-browser-check",
        f"--user-data-dir={_temp_profile_dir(port)}",
    ]
    if headless:
        args.append("--headless=new")
    args.append(file_url)

    try:
        process = subprocess.Popen(
            [str(browser), *args],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        raise CdpError(f"Failed to launch browser: {browser}") from exc

    ws_url = _wait_for_cdp(port, _LAUNCH_TIMEOUT)
    return BrowserProcess(process=process, ws_url=ws_url, port=port)


def _fetch_targets(port: int, timeout: float) -> list[Any]:
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=timeout)
    try:
        conn.request("GET", "/json", headers={"Connection": "close"})
        body = conn.getresponse().read()
    finally:
        conn.close()
    targets = json.loads(body.decode("utf-8", errors="replace"))
    if not isinstance(targets, list):
        raise ValueError("target list is not an array")
    return targets


def _wait_for_cdp(port: int, timeout: float) -> str:
    """Poll the CDP HTTP endpoint until a page's WebSocket URL is available."""
    start = time.monotonic()
    while True:
        if time.monotonic() - start > timeout:
            raise CdpError(
                f"Timed out waiting for CDP on port {port}. Is the browser running with "
                f"--remote-debugging-port={port}?"
            )
        try:
            targets = _fetch_targets(port, 2.0)
        except (OSError, ValueError, http.client.HTTPException):
            targets = []
        for page in targets:
            if isinstance(page, dict) and page.get("type") == "page":
                url = page.get("webSocketDebuggerUrl")
                if isinstance(url, str):
                    return url
        time.sleep(_RETRY_DELAY)


def connect_to_port(port: int) -> str:
    """Return the WebSocket URL of a page in a browser already listening on ``port``."""
    return _wait_for_cdp(port, _CONNECT_TIMEOUT)


def list_targets(port: int) -> list[Any]:
    """Return all targets (pages, workers, ...) known to the browser on ``port``."""
    try:
        return _fetch_targets(port, 2.0)
    except (OSError, http.client.HTTPException) as exc:
        raise CdpError(f"Cannot connect to CDP on port {port}") from exc
    except ValueError as exc:
        raise CdpError("Failed to parse CDP target list") from exc


# ---------------------------------------------------------------------------
# CDP client
# ---------------------------------------------------------------------------


def _js_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _result_value(result: dict) -> Any:
    inner = result.get("result")
    return inner.get("value") if isinstance(inner, dict) else None


class CdpClient:
    """A DevTools protocol connection to one browser tab."""

    def __init__(self, ws_url: str) -> None:
        try:
            self._ws = websocket.create_connection(ws_url)
        except (websocket.WebSocketException, OSError) as exc:
            raise CdpError(f"Failed to connect to CDP WebSocket: {ws_url}") from exc

    def __enter__(self) -> CdpClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def send(self, method: str, params: dict | None = None) -> dict:
        """Send a command and return its ``result``, skipping unrelated events."""
        msg_id = _next_id()
        message = json.dumps({"id": msg_id, "method": method, "params": params or {}})
        try:
            self._ws.send(message)
        except (websocket.WebSocketException, OSError) as exc:
            raise CdpError(f"Failed to send CDP command: {method}") from exc

        while True:
            try:
                opcode, data = self._ws.recv_data()
            except (websocket.WebSocketException, OSError) as exc:
                raise CdpError("Lost connection to browser") from exc
            if opcode == websocket.ABNF.OPCODE_CLOSE:
                raise CdpError("Browser closed the connection")
            if opcode != websocket.ABNF.OPCODE_TEXT:
                continue
            try:
                reply = json.loads(data)
            except ValueError as exc:
                raise CdpError(f"Invalid CDP message: {exc}") from exc
            if not isinstance(reply, dict) or reply.get("id") != msg_id:
                continue
            if "error" in reply:
                raise CdpError(f"CDP error: {json.dumps(reply['error'])}")
            result = reply.get("result")
            return result if result is not None else {}

    def enable_domain(self, domain: str) -> None:
        """Enable a CDP domain such as ``Runtime`` or ``Network``."""
        self.send(f"{domain}.enable", {})

    def collect_events(self, duration: float) -> list[dict]:
        """Gather events arriving within ``duration`` seconds."""
        deadline = time.monotonic() + duration
        events: list[dict] = []
        previous = self._ws.gettimeout()
        self._ws.settimeout(_POLL_INTERVAL)
        try:
            while time.monotonic() < deadline:
                try:
                    opcode, data = self._ws.recv_data()
                except (websocket.WebSocketTimeoutException, socket.timeout):
                    continue
                except (websocket.WebSocketException, OSError):
                    break
                if opcode == websocket.ABNF.OPCODE_CLOSE:
                    break
                if opcode != websocket.ABNF.OPCODE_TEXT:
                    continue
                try:
                    event = json.loads(data)
                except ValueError:
                    continue
                if isinstance(event, dict) and "method" in event:
                    events.append(event)
        finally:
            self._ws.settimeout(previous)
        return events

    def screenshot(self, selector: str | None = None) -> str:
        """Capture a PNG of the full page or one element; return it base64-encoded."""
        if selector is None:
            result = self.send(
                "Page.captureScreenshot", {"format": "png", "captureBeyondViewport": True}
            )
            return result.get("data") or ""

        node = self.send(
            "Runtime.evaluate",
            {
                "expression": "JSON.stringify(document.querySelector("
                f"{json.dumps(selector)}).getBoundingClientRect())",
                "returnByValue": True,
            },
        )
        rect_text = _result_value(node)
        if not isinstance(rect_text, str):
            raise CdpError(f"Element not found: {selector}")
        rect = json.loads(rect_text)
        clip = {
            "x": rect.get("x"),
            "y": rect.get("y"),
            "width": rect.get("width"),
            "height": rect.get("height"),
            "scale": 1,
        }
        result = self.send("Page.captureScreenshot", {"format": "png", "clip": clip})
        return result.get("data") or ""

    def get_dom(self, selector: str | None = None) -> str:
        """Return the outer HTML of the document or of the selected element."""
        if selector is None:
            expression = "document.documentElement.outerHTML"
        else:
            expression = (
                f"(document.querySelector({json.dumps(selector)}) || {{}}).outerHTML "
                "|| 'Element not found'"
            )
        result = self.send("Runtime.evaluate", {"expression": expression, "returnByValue": True})
        value = _result_value(result)
        return value if isinstance(value, str) else ""

    def get_console_logs(self) -> list[Any]:
        """Return logs captured so far and make sure future console calls are captured."""
        self.enable_domain("Console")
        result = self.send(
            "Runtime.evaluate", {"expression": _READ_LOGS_JS, "returnByValue": True}
        )
        existing = _result_value(result)
        logs: list[Any] = []
        if isinstance(existing, str):
            try:
                parsed = json.loads(existing)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                logs.extend(parsed)

        self.send("Runtime.evaluate", {"expression": _INSTALL_LOGGER_JS, "returnByValue": True})
        return logs

    def get_network_logs(self, wait_ms: int) -> list[dict]:
        """Return request/response events seen during ``wait_ms`` milliseconds."""
        self.enable_domain("Network")
        wanted = ("Network.requestWillBeSent", "Network.responseReceived")
        return [
            event
            for event in self.collect_events(wait_ms / 1000)
            if event.get("method") in wanted
        ]

    def click(self, selector: str) -> dict:
        """Click the element matching ``selector``."""
        result = self.send(
            "Runtime.evaluate",
            {"expression": _CLICK_JS.format(sel=json.dumps(selector)), "returnByValue": True},
        )
        status = _result_value(result)
        if not isinstance(status, str):
            status = "error"
        if status == "not_found":
            raise CdpError(f"Element not found: {selector}")
        return {"status": status, "selector": selector}

    def type_text(self, selector: str, text: str) -> dict:
        """Focus ``selector`` and type ``text`` one key at a time."""
        self.send(
            "Runtime.evaluate",
            {
                "expression": f"document.querySelector({json.dumps(selector)}).focus()",
                "returnByValue": True,
            },
        )
        for char in text:
            self.send("Input.dispatchKeyEvent", {"type": "keyDown", "text": char})
            self.send("Input.dispatchKeyEvent", {"type": "keyUp", "text": char})
        return {"typed": text, "selector": selector}

    def scroll(self, x: float, y: float) -> dict:
        """Scroll the window by (x, y)."""
        self.send(
            "Runtime.evaluate",
            {
                "expression": f"window.scrollBy({_js_number(x)}, {_js_number(y)})",
                "returnByValue": True,
            },
        )
        return {"scrolled": {"x": x, "y": y}}

    def touch(self, x: float, y: float) -> dict:
        """Tap at (x, y)."""
        self.send(
            "Input.dispatchTouchEvent",
            {"type": "touchStart", "touchPoints": [{"x": x, "y": y}]},
        )
        self.send("Input.dispatchTouchEvent", {"type": "touchEnd", "touchPoints": []})
        return {"touched": {"x": x, "y": y}}

    def evaluate(self, expression: str) -> Any:
        """Evaluate JavaScript in the page, awaiting promises; return the remote object."""
        result = self.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
        )
        if "exceptionDetails" in result:
            raise CdpError(f"JS exception: {json.dumps(result['exceptionDetails'])}")
        return result.get("result")

    def print_pdf(self) -> str:
        """Render the page as PDF (headless only); return it base64-encoded."""
        result = self.send("Page.printToPDF", {"printBackground": True})
        return result.get("data") or ""

    def navigate(self, url: str) -> dict:
        """Load ``url`` in the tab."""
        return self.send("Page.navigate", {"url": url})

    def close(self) -> None:
        """Close the connection, ignoring errors."""
        try:
            self._ws.close()
        except (websocket.WebSocketException, OSError):
            pass


# ---------------------------------------------------------------------------
# Session files: {port, pid, ws_url} per running browser
# ---------------------------------------------------------------------------


def _state_dir() -> Path:
    directory = Path(tempfile.gettempdir()) / "sfhtml-pages"
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass
    return directory


def _session_path(port: int) -> Path:
    return _state_dir() / f"{port}.json"


def save_session(port: int, pid: int, ws_url: str) -> None:
    """Record a running debug session."""
    data = {"port": port, "pid": pid, "ws_url": ws_url}
    _session_path(port).write_text(json.dumps(data, indent=2), encoding="utf-8")


def load_session(port: int) -> Any:
    """Load the session recorded for ``port``."""
    try:
        text = _session_path(port).read_text(encoding="utf-8")
    except OSError as exc:
        raise CdpError(
            f"No active session on port {port}. Use `sfhtml debug start <file> --port {port}` "
            "first."
        ) from exc
    return json.loads(text)


def remove_session(port: int) -> None:
    """Forget the session for ``port``, if any."""
    try:
        _session_path(port).unlink()
    except OSError:
        pass


def list_sessions() -> list[Any]:
    """Return every readable recorded session."""
    sessions: list[Any] = []
    try:
        paths = sorted(_state_dir().iterdir())
    except OSError:
        return sessions
    for path in paths:
        if path.suffix != ".json":
            continue
        try:
            sessions.append(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError):
            continue
    return sessions