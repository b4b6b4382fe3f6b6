"""Screenshot post-processing before it goes out on the event stream."""
from PIL import Image
import io
import base64


def optimize_screenshot(screenshot_bytes: bytes, max_width: int = 1280, quality: int = 80) -> bytes:
    """
    Resize and re-encode a screenshot as JPEG.
    Full-page captures of long pages get large fast, and every byte of them
    is pushed to every connected client as base64.
    """
    img = Image.open(io.BytesIO(screenshot_bytes))

    # Resize if wider than max_width
    w, h = img.size
    if w > max_width:
        ratio = max_width / w
        img = img.resize((max_width, max(1, int(h * ratio))), Image.LANCZOS)

    # Convert RGBA to RGB (JPEG doesn't support alpha)
    if img.mode == 'RGBA':
        bg = Image.new('RGB', img.size, (255, 255, 255))
        bg.paste(img, mask=img.split()[3])
        img = bg
    elif img.mode != 'RGB':
        img = img.convert('RGB')

    buf = io.BytesIO()
    img.save(buf, format='JPEG', quality=quality, optimize=True)
    return buf.getvalue()


def to_data_uri(image_bytes: bytes, media_type: str = "image/jpeg") -> str:
    """Wrap image bytes in a ``data:`` URI the browser can render directly."""
    encoded = base64.b64encode(image_bytes).decode()
    return f"data:{media_type};base64,{encoded}"
