import http.client
import json
import threading
import time
from contextlib import contextmanager

import pytest
import websocket

from sfhtml.live import (
    LIVE_CLIENT_JS,
    LiveServer,
    compute_ws_accept,
    encode_ws_text_frame,
    guess_mime,
    hash_content,
    inject_live_script,
    parse_request_path,
    percent_decode,
)

PAGE = "<html><body><p>hello</p></body></html>"


@pytest.fixture
def site(tmp_path):
    root = tmp_path / "site"
    root.mkdir()
    page = root / "index.html"
    page.write_text(PAGE, encoding="utf-8")
    (root / "style.css").write_text("p { color: red; }", encoding="utf-8")
    (root / "my file.css").write_text("a {}", encoding="utf-8")
    (tmp_path / "secret.txt").write_text("hidden", encoding="utf-8")
    return page


@contextmanager
def running(server):
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        thread.join(5)


def _get(port, path):
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", path)
        resp = conn.getresponse()
        return resp.status, resp.getheader("Content-Type"), resp.read()
    finally:
        conn.close()


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_ws_accept_matches_protocol_example():
    assert compute_ws_accept("dGhlIHNhbXBsZSBub25jZQ==") == "s3pPLMBiTxaQ9kJ+YzK+HxOo+xQ="


def test_hash_content_of_empty_string():
    assert hash_content("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert hash_content("a") != hash_content("b")
    assert len(hash_content("anything")) == 64


def test_encode_small_frame():
    assert encode_ws_text_frame("hi") == b"\x81\x02hi"


def test_encode_medium_frame_uses_16_bit_length():
    frame = encode_ws_text_frame("x" * 200)
    assert frame[:2] == b"\x81\x7e"
    assert int.from_bytes(frame[2:4], "big") == 200
    assert frame[4:] == b"x" * 200


def test_encode_large_frame_uses_64_bit_length():
    frame = encode_ws_text_frame("y" * 70000)
    assert frame[1] == 127
    assert int.from_bytes(frame[2:10], "big") == 70000
    assert len(frame) == 10 + 70000


def test_percent_decode():
    assert percent_decode("/a%20b") == "/a b"
    assert percent_decode("%41") == "A"
    assert percent_decode("plain") == "plain"


def test_parse_request_path():
    assert parse_request_path("GET /x.css HTTP/1.1\r\nHost: a\r\n\r\n") == "/x.css"
    assert parse_request_path("") == "/"
    assert parse_request_path("GET") == "/"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("a.css", "text/css; charset=utf-8"),
        ("a.html", "text/html; charset=utf-8"),
        ("a.mjs", "application/javascript; charset=utf-8"),
        ("a.png", "image/png"),
        ("a.wasm", "application/wasm"),
        ("a.unknown", "application/octet-stream"),
        ("noext", "application/octet-stream"),
        ("A.PNG", "application/octet-stream"),
    ],
)
def test_guess_mime(name, expected):
    assert guess_mime(name) == expected


def test_inject_before_last_body_close():
    html = "<html><body>x</body><body>y</body></html>"
    result = inject_live_script(html)
    assert result == "<html><body>x</body><body>y" + LIVE_CLIENT_JS + "</body></html>"
    assert result.count("data-sfhtml-live") == 1


def test_inject_is_case_insensitive():
    result = inject_live_script("<BODY>a</BODY>")
    assert result == "<BODY>a" + LIVE_CLIENT_JS + "</BODY>"


def test_inject_without_body_appends():
    assert inject_live_script("<p>x</p>") == "<p>x</p>\n" + LIVE_CLIENT_JS


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        LiveServer(tmp_path / "nope.html", 0, True)


def test_serves_main_file_with_injection(site):
    with running(LiveServer(site, 0, True)) as server:
        status, ctype, body = _get(server.port, "/")
        assert status == 200
        assert ctype == "text/html; charset=utf-8"
        assert body.decode("utf-8") == inject_live_script(PAGE)
        status, _, body2 = _get(server.port, "/index.html")
        assert status == 200
        assert body2 == body


def test_serves_main_file_without_injection(site):
    with running(LiveServer(site, 0, False)) as server:
        status, _, body = _get(server.port, "/")
        assert status == 200
        assert body.decode("utf-8") == PAGE


def test_serves_static_assets(site):
    with running(LiveServer(site, 0, False)) as server:
        status, ctype, body = _get(server.port, "/style.css")
        assert (status, ctype, body) == (200, "text/css; charset=utf-8", b"p { color: red; }")
        status, _, body = _get(server.port, "/my%20file.css")
        assert (status, body) == (200, b"a {}")


def test_missing_asset_is_404(site):
    with running(LiveServer(site, 0, False)) as server:
        status, _, body = _get(server.port, "/missing.js")
        assert (status, body) == (404, b"Not Found")


def test_path_outside_base_is_forbidden(site):
    with running(LiveServer(site, 0, False)) as server:
        status, _, body = _get(server.port, "/../secret.txt")
        assert (status, body) == (403, b"Forbidden")


def test_handle_file_change_updates_content(site):
    server = LiveServer(site, 0, False)
    try:
        assert server.handle_file_change() is False
        site.write_text("<p>changed</p>", encoding="utf-8")
        assert server.handle_file_change() is True
        assert server.current_html == "<p>changed</p>"
        assert server.handle_file_change() is False
    finally:
        server.shutdown()


def test_websocket_client_receives_full_update(site):
    with running(LiveServer(site, 0, True)) as server:
        ws = websocket.create_connection(f"ws://127.0.0.1:{server.port}/__sfhtml_ws", timeout=5)
        try:
            assert _wait_for(lambda: server.client_count == 1)
            site.write_text("<html><body>changed</body></html>", encoding="utf-8")
            server.handle_file_change()
            message = json.loads(ws.recv())
            assert message["type"] == "full"
            assert message["html"] == inject_live_script("<html><body>changed</body></html>")
        finally:
            ws.shutdown()
        status, _, body = _get(server.port, "/")
        assert body.decode("utf-8") == inject_live_script("<html><body>changed</body></html>")