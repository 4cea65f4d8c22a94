"""
Image helpers for uploads and classifier payloads
"""
import base64
import logging

logger = logging.getLogger(__name__)

# (magic prefix, mime type)
_SIGNATURES = [
    (b'\xff\xd8\xff', 'image/jpeg'),
    (b'\x89PNG\r\n\x1a\n', 'image/png'),
    (b'GIF87a', 'image/gif'),
    (b'GIF89a', 'image/gif'),
]

_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'image/webp': 'webp',
}


def detect_image_mime(data: bytes, default: str = 'image/jpeg') -> str:
    """
    Sniff the image MIME type from magic bytes.

    Falls back to `default` (JPEG, what phone cameras produce) when the
    signature is unknown.
    """
    if not data:
        return default

    for signature, mime in _SIGNATURES:
        if data.startswith(signature):
            return mime

    # WebP: RIFF....WEBP
    if len(data) >= 12 and data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'image/webp'

    logger.debug("Unknown image signature, assuming %s", default)
    return default


def extension_for_mime(mime: str) -> str:
    """File extension for a MIME type (jpg when unknown)."""
    return _EXTENSIONS.get(mime, 'jpg')


def to_data_url(data: bytes, mime: str = None) -> str:
    """Encode image bytes as a base64 data URL for inline model input."""
    mime = mime or detect_image_mime(data)
    encoded = base64.b64encode(data).decode('ascii')
    return f"data:{mime};base64,{encoded}"
