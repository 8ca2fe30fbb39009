"""Shared fixtures: small PDFs built with pypdf and Pillow, and a mock OCR provider."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest
from PIL import Image
from pypdf import PdfWriter

from pdf_vision_mcp.config import EnvCredentialProvider


def write_blank_pdf(path: Path, *, pages: int = 1) -> Path:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    with path.open("wb") as f:
        writer.write(f)
    return path


def write_image_pdf(path: Path, *, size: tuple[int, int] = (32, 24)) -> Path:
    Image.new("RGB", size, (200, 30, 30)).save(path, "PDF")
    return path


@pytest.fixture
def blank_pdf(tmp_path: Path) -> Path:
    return write_blank_pdf(tmp_path / "blank.pdf")


@pytest.fixture
def image_pdf(tmp_path: Path) -> Path:
    return write_image_pdf(tmp_path / "image.pdf")


@pytest.fixture
def credentials() -> EnvCredentialProvider:
    return EnvCredentialProvider({"MISTRAL_API_KEY": "test-key"})


class FakeMistral:
    """Records requests and answers like the chat completions endpoint."""

    def __init__(self, text: str = "Extracted text", *, status_code: int = 200) -> None:
        self.text = text
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        self.cancelled = 0
        self.hang = False

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        return httpx.Response(
            self.status_code,
            json={"choices": [{"message": {"content": self.text}}]},
        )

    @property
    def calls(self) -> int:
        return len(self.requests)

    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_mistral() -> FakeMistral:
    return FakeMistral()
