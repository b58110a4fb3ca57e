"""
Unit tests for join links and QR codes.
"""

import io

from PIL import Image

from stagepass.share import build_join_url, generate_qr_png


def test_build_join_url():
    assert build_join_url("http://192.168.1.5:8000/", "123456") == "http://192.168.1.5:8000/live-room?joinCode=123456"
    assert build_join_url("https://karaoke.example", "000042") == "https://karaoke.example/live-room?joinCode=000042"


def test_generate_qr_png():
    data = generate_qr_png("http://localhost:8000/live-room?joinCode=123456", size=200)

    assert data.startswith(b"\x89PNG")
    image = Image.open(io.BytesIO(data))
    assert image.size == (200, 200)
