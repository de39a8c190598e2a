"""Tests for the spreadsheet HTTP routes."""

import os
import sys
from collections import deque
from pathlib import Path
from types import SimpleNamespace

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from services.engine_config import reload_engine_settings

# The app reads its middleware settings at import time
os.environ["DISABLE_RATE_LIMIT"] = "1"
reload_engine_settings()

from api.routes import spreadsheets
from main import app
from middleware import rate_limit
from middleware.rate_limit import ClientWindow, RateLimitConfig, RateLimitMiddleware
from services.sheet_engine import Workbook


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SHEET_UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("SHEET_OUTPUT_DIR", str(tmp_path / "outputs"))
    reload_engine_settings()
    yield TestClient(app)
    spreadsheets._active_workbooks.clear()
    spreadsheets._workbook_names.clear()
    monkeypatch.undo()
    reload_engine_settings()


def _upload(client, wb, filename="book.xlsx"):
    files = {"file": (filename, wb.write_to_bytes(), spreadsheets.XLSX_MEDIA_TYPE)}
    return client.post("/spreadsheets/", files=files)


@pytest.fixture
def spreadsheet_id(client):
    wb = Workbook.new()
    wb.set_cell_value("Sheet1", "A1", "name")
    wb.set_cell_value("Sheet1", "B2", 7)
    response = _upload(client, wb)
    assert response.status_code == 200
    return response.json()["id"]


class TestUpload:
    """Uploading workbooks."""

    def test_upload(self, client, tmp_path):
        response = _upload(client, Workbook.new())
        body = response.json()
        assert response.status_code == 200
        assert body["sheets"] == ["Sheet1"]
        assert (tmp_path / "uploads" / body["id"]).exists()

    def test_wrong_extension(self, client):
        response = _upload(client, Workbook.new(), filename="book.csv")
        assert response.status_code == 400

    def test_not_a_package(self, client, tmp_path):
        files = {"file": ("broken.xlsx", b"nope", spreadsheets.XLSX_MEDIA_TYPE)}
        response = client.post("/spreadsheets/", files=files)
        assert response.status_code == 400
        assert response.json()["detail"]["error_type"] == "PackageError"
        assert list((tmp_path / "uploads").iterdir()) == []

    def test_too_large(self, client, monkeypatch):
        monkeypatch.setenv("SHEET_MAX_UPLOAD_BYTES", "10")
        reload_engine_settings()
        response = _upload(client, Workbook.new())
        assert response.status_code == 413


class TestReading:
    """Sheet listing and iteration endpoints."""

    def test_list_sheets(self, client, spreadsheet_id):
        response = client.get(f"/spreadsheets/{spreadsheet_id}/sheets")
        sheet = response.json()["sheets"][0]
        assert sheet["name"] == "Sheet1"
        assert (sheet["last_row"], sheet["last_col"]) == (2, 2)

    def test_rows_and_cols(self, client, spreadsheet_id):
        rows = client.get(f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1/rows").json()["rows"]
        cols = client.get(f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1/cols").json()["cols"]
        assert rows == [["name"], ["", "7"]]
        assert cols == [["name", ""], ["", "7"]]

    def test_unknown_spreadsheet(self, client):
        response = client.get("/spreadsheets/missing/sheets")
        assert response.status_code == 404

    def test_unknown_sheet(self, client, spreadsheet_id):
        response = client.get(f"/spreadsheets/{spreadsheet_id}/sheets/Nope/rows")
        assert response.status_code == 404
        assert response.json()["detail"]["message"] == "sheet Nope is not exist"


class TestMutations:
    """Column and row updates."""

    def test_update_columns(self, client, spreadsheet_id):
        response = client.put(
            f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1/columns/B:C",
            json={"width": 20, "visible": False},
        )
        assert response.status_code == 200
        column = client.get(f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1/columns/C").json()
        assert column["width"] == 20
        assert column["visible"] is False
        assert column["outline_level"] == 0

    def test_invalid_column(self, client, spreadsheet_id):
        response = client.put(
            f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1/columns/*",
            json={"visible": False},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["message"] == 'invalid column name "*"'

    def test_width_too_large(self, client, spreadsheet_id):
        response = client.put(
            f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1/columns/A",
            json={"width": 300},
        )
        assert response.status_code == 400

    def test_update_row(self, client, spreadsheet_id):
        response = client.put(
            f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1/rows/2",
            json={"height": 40, "outline_level": 2},
        )
        body = response.json()
        assert body["height"] == 40
        assert body["outline_level"] == 2
        assert body["visible"] is True

    def test_insert_and_remove(self, client, spreadsheet_id):
        base = f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1"
        assert client.post(f"{base}/columns/A/insert").status_code == 200
        assert client.post(f"{base}/rows/1/insert").status_code == 200
        assert client.get(f"{base}/rows").json()["rows"] == [[], ["", "name"], ["", "", "7"]]
        assert client.post(f"{base}/rows/1/remove").status_code == 200
        assert client.post(f"{base}/columns/A/remove").status_code == 200
        assert client.get(f"{base}/rows").json()["rows"] == [["name"], ["", "7"]]

    def test_export(self, client, spreadsheet_id, tmp_path):
        client.put(
            f"/spreadsheets/{spreadsheet_id}/sheets/Sheet1/columns/A",
            json={"width": 30},
        )
        response = client.post(f"/spreadsheets/{spreadsheet_id}/export")
        assert response.status_code == 200
        exported = Workbook.open(response.content)
        assert exported.get_col_width("Sheet1", "A") == 30
        assert exported.get_cell_value("Sheet1", "A1") == "name"
        assert len(list((tmp_path / "outputs").iterdir())) == 1


class TestRateLimit:
    """Per-client request budgets."""

    def _app(self, middleware=RateLimitMiddleware, **limits):
        limited = FastAPI()
        limited.add_middleware(middleware, config=RateLimitConfig(**limits))

        @limited.get("/ping")
        async def ping():
            return {"ok": True}

        @limited.post("/ping")
        async def write():
            return {"ok": True}

        return TestClient(limited)

    def test_write_budget(self):
        client = self._app(write_requests_per_minute=2)
        assert client.post("/ping").status_code == 200
        assert client.post("/ping").status_code == 200
        response = client.post("/ping")
        assert response.status_code == 429
        assert "Retry-After" in response.headers
        # Reads have their own budget
        assert client.get("/ping").status_code == 200

    def test_burst_limit(self):
        client = self._app(burst_limit=3)
        codes = [client.get("/ping").status_code for _ in range(4)]
        assert codes == [200, 200, 200, 429]

    def test_headers(self):
        client = self._app(requests_per_minute=5)
        response = client.get("/ping")
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_prune_forgets_idle_clients(self):
        limiter = RateLimitMiddleware(FastAPI())
        limiter.clients["10.0.0.1"] = ClientWindow(reads=deque([100.0]), burst=deque([100.0]))
        limiter.clients["10.0.0.2"] = ClientWindow(writes=deque([150.0]))
        limiter.prune(170.0)
        assert list(limiter.clients) == ["10.0.0.2"]

    def test_rotating_forwarded_for_does_not_accumulate(self, monkeypatch):
        clock = [1000.0]
        monkeypatch.setattr(rate_limit, "time", SimpleNamespace(time=lambda: clock[0]))
        instances = []

        class RecordingLimiter(RateLimitMiddleware):
            def __init__(self, app, config=None):
                super().__init__(app, config)
                instances.append(self)

        client = self._app(middleware=RecordingLimiter)
        for n in range(5):
            assert client.get("/ping", headers={"X-Forwarded-For": f"10.0.0.{n}"}).status_code == 200
        assert len(instances[-1].clients) == 5

        clock[0] += 120
        client.get("/ping", headers={"X-Forwarded-For": "10.0.0.99"})
        assert list(instances[-1].clients) == ["10.0.0.99"]
