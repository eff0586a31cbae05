import base64

from palmjob.models import ImagePayload

# (offset, signature, mime)
_SIGNATURES: tuple[tuple[int, bytes, str], ...] = (
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
)
_HEIF_BRANDS = {b"heic", b"heix", b"hevc", b"heim", b"heis", b"mif1", b"msf1"}


def sniff_image_type(data: bytes) -> str | None:
    """MIME type from the file's magic bytes; None if it is not a supported image."""
    if not data:
        return None
    for offset, signature, mime in _SIGNATURES:
        if data[offset : offset + len(signature)] == signature:
            return mime
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    # ISO BMFF: size(4) 'ftyp' brand(4)
    if len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in _HEIF_BRANDS:
        return "image/heic"
    return None


# What the vision model accepts as image input
VISION_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


def to_data_uri(image: ImagePayload) -> str:
    b64 = base64.standard_b64encode(image.data).decode("ascii")
    return f"data:{image.mime_type};base64,{b64}"
