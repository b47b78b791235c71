"""Tests for the FastAPI service."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app import SESSION_COOKIE, create_app
from core.exceptions import AttemptInProgressError
from services.canvas.drawing_surface import ImageSurface
from utils.image_utils import to_png_bytes


@pytest.fixture
def canvas_png(stroke_surface: ImageSurface) -> bytes:
    return to_png_bytes(stroke_surface.get_bitmap())


@pytest.fixture
def client(make_session, ocr_backend_cls) -> TestClient:
    return TestClient(create_app(session_factory=lambda: make_session(ocr_backend_cls("2+2"))))


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_index_serves_canvas_page(client) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert '<canvas id="ink"' in response.text


def test_solve_uploaded_canvas(client, canvas_png) -> None:
    response = client.post("/solve", files={"file": ("canvas.png", canvas_png, "image/png")})
    assert response.status_code == 200
    data = response.json()
    assert data["phase"] == "done"
    assert data["result"] == {"type": "value", "value": 4, "text": "4"}
    assert data["markup"].startswith("<math")


def test_blank_canvas_asks_for_a_drawing(client) -> None:
    blank = to_png_bytes(Image.new("RGBA", (100, 50), (0, 0, 0, 255)))
    response = client.post("/solve", files={"file": ("canvas.png", blank, "image/png")})
    assert response.status_code == 200
    assert response.json()["error"] == "Please draw something first!"


def test_undecodable_upload(client) -> None:
    response = client.post("/solve", files={"file": ("canvas.png", b"not a png", "image/png")})
    assert response.status_code == 400
    assert response.json()["code"] == "INPUT_1001"


def test_wrong_media_type(client, canvas_png) -> None:
    response = client.post("/solve", files={"file": ("notes.txt", canvas_png, "text/plain")})
    assert response.status_code == 415


def test_busy_session_returns_conflict(make_session, ocr_backend_cls, canvas_png) -> None:
    session = make_session(ocr_backend_cls("2+2"))

    async def busy(surface):
        raise AttemptInProgressError("a solve attempt is already in progress")

    session.solve = busy
    client = TestClient(create_app(session_factory=lambda: session))
    response = client.post("/solve", files={"file": ("canvas.png", canvas_png, "image/png")})
    assert response.status_code == 409
    assert response.json()["code"] == "INPUT_1002"


def test_clear_and_session_state(client, canvas_png) -> None:
    client.post("/solve", files={"file": ("canvas.png", canvas_png, "image/png")})
    assert client.get("/session").json()["phase"] == "done"

    cleared = client.post("/clear").json()
    assert cleared["phase"] == "idle"
    assert client.get("/session").json()["result"] is None


def test_out_of_range_result_is_a_failure_not_a_server_error(make_session, ocr_backend_cls, canvas_png) -> None:
    client = TestClient(create_app(session_factory=lambda: make_session(ocr_backend_cls("10^400/3"))))
    response = client.post("/solve", files={"file": ("canvas.png", canvas_png, "image/png")})
    assert response.status_code == 200
    data = response.json()
    assert data["phase"] == "failed"
    assert data["error"] == "result out of range"


class TestSessionsPerBrowser:
    @pytest.fixture
    def app(self, make_session, ocr_backend_cls):
        return create_app(session_factory=lambda: make_session(ocr_backend_cls("2+2")))

    def test_cookie_is_issued(self, app) -> None:
        response = TestClient(app).get("/session")
        assert response.cookies.get(SESSION_COOKIE)

    def test_clear_only_affects_its_own_browser(self, app, canvas_png) -> None:
        alice = TestClient(app)
        bob = TestClient(app)

        alice.post("/solve", files={"file": ("canvas.png", canvas_png, "image/png")})
        assert bob.get("/session").json()["phase"] == "idle"

        bob.post("/clear")
        assert alice.get("/session").json()["phase"] == "done"
        assert len(app.state.sessions) == 2

    def test_unknown_cookie_gets_a_fresh_session(self, app) -> None:
        client = TestClient(app, cookies={SESSION_COOKIE: "made-up"})
        response = client.get("/session")
        assert response.json()["phase"] == "idle"
        assert response.cookies.get(SESSION_COOKIE) != "made-up"
