"""
qnet_capsule — file analysis
=============================
Run with:  python -m pytest tests/ -v
"""

import hashlib
import io

import pytest
from PIL import Image

from qnet_capsule.analyzer import FileAnalyzer, categorize, file_signature, shannon_entropy


def png_bytes(size=(4, 3)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=(200, 10, 10)).save(buf, format="PNG")
    return buf.getvalue()


# ── Entropy ───────────────────────────────────────────────────────────────────
def test_entropy_bounds():
    assert shannon_entropy(b"") == 0.0
    assert shannon_entropy(b"aaaa") == 0.0
    assert shannon_entropy(b"abab") == 1.0
    assert shannon_entropy(bytes(range(256))) == 8.0

def test_entropy_samples_first_kilobyte():
    data = b"\x00" * 1024 + bytes(range(256)) * 16
    assert FileAnalyzer().classify(data, "zeros.bin").entropy == 0.0


# ── Signatures and categories ─────────────────────────────────────────────────
@pytest.mark.parametrize("head,expected", [
    (b"\x89PNG\r\n\x1a\n", "PNG"),
    (b"%PDF-1.7", "PDF"),
    (b"PK\x03\x04\x14\x00", "ZIP"),
    (b"\xff\xd8\xff\xe0\x00\x10", "JPEG"),
    (b"RIFF\x24\x00\x00\x00WAVE", "RIFF"),
    (b"Rar!\x1a\x07\x00\x00", "RAR"),
    (b"\x00\x00\x00\x18ftypmp42", "MP4/MOV"),
    (b"\x00\x00\x00\x20ftypisom", "MP4/MOV"),
    (b"\x00\x00\x00\x14ftypqt  ", "MP4/MOV"),
    (b"\x00" * 8, "unknown"),
    (b"\x00\x00\x00\x01\x02\x03\x04\x05", "unknown"),
    (b"plain text", "unknown"),
    (b"\x89PN", "unknown"),
])
def test_file_signature(head, expected):
    assert file_signature(head) == expected

@pytest.mark.parametrize("mime,name,expected", [
    ("video/mp4", "clip.mp4", "video"),
    ("application/octet-stream", "song.flac", "audio"),
    ("image/png", "pic.png", "image"),
    ("text/x-python", "tool.py", "code"),
    ("text/html", "page.html", "code"),
    ("text/plain", "notes.txt", "document"),
    ("application/pdf", "paper.pdf", "document"),
    ("application/zip", "bundle.zip", "archive"),
    ("application/octet-stream", "blob", "other"),
])
def test_categorize(mime, name, expected):
    assert categorize(mime, name) == expected


# ── Classification ────────────────────────────────────────────────────────────
def test_classify_png_reads_dimensions():
    data = png_bytes((4, 3))
    analysis = FileAnalyzer().classify(data, "pixel.png")
    assert analysis.mime_type == "image/png"
    assert analysis.category == "image"
    assert analysis.signature == "PNG"
    assert analysis.is_multimedia is True
    assert analysis.compression == "compressed"
    assert analysis.dimensions == (4, 3)
    assert analysis.size == len(data)
    assert analysis.sha256 == hashlib.sha256(data).hexdigest()

def test_classify_broken_image_has_no_dimensions():
    analysis = FileAnalyzer().classify(b"\x89PNG\r\n\x1a\n" + b"\x00" * 20, "broken.png")
    assert analysis.signature == "PNG"
    assert analysis.dimensions is None

def test_classify_text():
    analysis = FileAnalyzer().classify(b"dear future self", "letter.txt")
    assert analysis.mime_type == "text/plain"
    assert analysis.category == "document"
    assert analysis.is_multimedia is False
    assert analysis.dimensions is None
    assert analysis.compression == "unknown"

def test_classify_video_is_codec_compressed():
    analysis = FileAnalyzer().classify(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64, "clip.mp4")
    assert analysis.category == "video"
    assert analysis.signature == "MP4/MOV"
    assert analysis.compression == "codec-compressed"

def test_classify_unknown_extension_falls_back():
    analysis = FileAnalyzer().classify(b"\x01\x02\x03\x04\x05", "payload.qnetblob")
    assert analysis.mime_type == "application/octet-stream"
    assert analysis.category == "other"
