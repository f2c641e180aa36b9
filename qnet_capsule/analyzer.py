"""
File analysis — MIME type, category, magic bytes, entropy.

Purely descriptive. The result is stored next to a capsule so a recipient
knows roughly what they are about to unlock; it never takes part in
authorization or decryption.
"""

import hashlib
import io
import logging
import math
import mimetypes
from collections import Counter
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .models import FileAnalysis

logger = logging.getLogger(__name__)

ENTROPY_SAMPLE = 1024

# Hex prefix of the first 8 bytes -> format. Longer prefixes first.
SIGNATURES = [
    ("526172211a0700", "RAR"),
    ("89504e47", "PNG"),
    ("47494638", "GIF"),
    ("52494646", "RIFF"),        # WEBP, AVI and WAV share this container
    ("49492a00", "TIFF"),
    ("1a45dfa3", "WEBM/MKV"),
    ("464c5601", "FLV"),
    ("3026b275", "WMV"),
    ("664c6143", "FLAC"),
    ("4f676753", "OGG"),
    ("25504446", "PDF"),
    ("d0cf11e0", "MS Office"),
    ("504b0304", "ZIP"),
    ("7f454c46", "ELF"),
    ("4d5a9000", "EXE"),
    ("ffd8ff", "JPEG"),
    ("494433", "MP3"),
    ("1f8b08", "GZIP"),
    ("424d", "BMP"),
]

# ISO base media files (MP4, MOV) open with a box size, then "ftyp".
FTYP_OFFSET = 4

VIDEO_EXT    = {"mp4", "avi", "mkv", "mov", "wmv", "flv", "webm", "m4v", "3gp"}
AUDIO_EXT    = {"mp3", "wav", "flac", "aac", "ogg", "m4a", "wma", "opus"}
IMAGE_EXT    = {"jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "svg", "ico"}
DOCUMENT_EXT = {"pdf", "doc", "docx", "txt", "rtf", "odt", "pages"}
ARCHIVE_EXT  = {"zip", "rar", "7z", "tar", "gz", "bz2"}
CODE_EXT     = {"js", "html", "css", "py", "java", "cpp", "c", "php", "rb"}

MULTIMEDIA = {"video", "audio", "image"}
COMPRESSED_SIGNATURES   = ("GZIP", "ZIP", "RAR", "FLAC", "PNG", "JPEG")
UNCOMPRESSED_SIGNATURES = ("BMP", "TIFF")


def shannon_entropy(data: bytes) -> float:
    """Shannon entropy in bits per byte, rounded to two decimals."""
    if not data:
        return 0.0
    total = len(data)
    entropy = 0.0
    for count in Counter(data).values():
        p = count / total
        entropy -= p * math.log2(p)
    return round(entropy, 2)


def file_signature(buffer: bytes) -> str:
    if not buffer or len(buffer) < 4:
        return "unknown"
    if buffer[FTYP_OFFSET:FTYP_OFFSET + 4] == b"ftyp":
        return "MP4/MOV"
    head = buffer[:8].hex()
    for prefix, name in SIGNATURES:
        if head.startswith(prefix):
            return name
    return "unknown"


def categorize(mime_type: str, file_name: str = "") -> str:
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""

    if mime_type.startswith("video/") or ext in VIDEO_EXT:
        return "video"
    if mime_type.startswith("audio/") or ext in AUDIO_EXT:
        return "audio"
    if mime_type.startswith("image/") or ext in IMAGE_EXT:
        return "image"
    if ext in CODE_EXT:
        return "code"
    if ext in DOCUMENT_EXT or "document" in mime_type or mime_type.startswith("text/"):
        return "document"
    if ext in ARCHIVE_EXT or "archive" in mime_type or "compressed" in mime_type:
        return "archive"
    return "other"


def compression_hint(signature: str, mime_type: str) -> str:
    if any(s in signature for s in COMPRESSED_SIGNATURES):
        return "compressed"
    if any(s in signature for s in UNCOMPRESSED_SIGNATURES):
        return "uncompressed"
    if mime_type.startswith(("video/", "audio/")):
        return "codec-compressed"
    return "unknown"


def image_dimensions(buffer: bytes) -> Optional[Tuple[int, int]]:
    try:
        with Image.open(io.BytesIO(buffer)) as img:
            return img.size
    except (UnidentifiedImageError, OSError, ValueError):
        return None


class FileAnalyzer:
    """Classifies a byte buffer for display purposes."""

    def classify(self, buffer: bytes, file_name: str) -> FileAnalysis:
        mime_type, _ = mimetypes.guess_type(file_name or "")
        mime_type = mime_type or "application/octet-stream"
        signature = file_signature(buffer)
        category  = categorize(mime_type, file_name or "")

        analysis = FileAnalysis(
            mime_type=mime_type,
            category=category,
            signature=signature,
            is_multimedia=category in MULTIMEDIA,
            entropy=shannon_entropy(buffer[:ENTROPY_SAMPLE]),
            compression=compression_hint(signature, mime_type),
            size=len(buffer),
            sha256=hashlib.sha256(buffer).hexdigest(),
            dimensions=image_dimensions(buffer) if category == "image" else None,
        )
        logger.debug(f"Classified {file_name!r}: {category}/{signature} entropy={analysis.entropy}")
        return analysis
