"""Pytest configuration and fixtures for DocLedger tests."""
from __future__ import annotations

import io

import fitz
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from docledger.api import create_app
from docledger.config import Settings
from docledger.ledger import LocalRegistry

BASE_TIME = 1_700_000_000


class StepClock:
    """Deterministic clock: each call advances one second."""

    def __init__(self, start: int = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        self.now += 1
        return float(self.now)


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path / "data", public_base_url="http://testserver")


@pytest.fixture
def registry(tmp_path):
    reg = LocalRegistry(tmp_path / "ledger.jsonl", clock=StepClock())
    yield reg
    reg.close()


@pytest.fixture
def client(settings, registry):
    with TestClient(create_app(settings, registry)) as c:
        yield c


@pytest.fixture
def pdf_bytes():
    doc = fitz.open()
    for n in range(2):
        page = doc.new_page()
        page.insert_text((72, 72), f"Quarterly report, page {n + 1}", fontsize=12)
    doc.set_metadata({"title": "Quarterly report", "author": "Finance"})
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (200, 100), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()
