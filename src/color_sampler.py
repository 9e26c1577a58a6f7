"""Pigment sampling from garment reference photos."""

from io import BytesIO

from PIL import Image, ImageStat, UnidentifiedImageError


def sample_center_hex(image_bytes: bytes | None, sample_fraction: float = 0.5, grid: int = 100) -> str:
    """Return the mean color of the image center as "#RRGGBB".

    The image is resized to grid x grid, then the centered box covering
    sample_fraction of each side is averaged. Channel means are floored.

    Args:
        image_bytes: Encoded image
        sample_fraction: Side of the sampled box relative to the grid, in (0, 1]
        grid: Side of the square the image is resized to

    Raises:
        ValueError: If the image cannot be decoded or the fraction is out of range
    """
    if not 0 < sample_fraction <= 1:
        raise ValueError(f"sample_fraction must be in (0, 1], got {sample_fraction}")
    if grid < 1:
        raise ValueError(f"grid must be positive, got {grid}")
    if not image_bytes:
        raise ValueError("No image data to sample")

    try:
        with Image.open(BytesIO(image_bytes)) as img:
            small = img.convert("RGB").resize((grid, grid))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ValueError(f"Cannot decode image: {e}") from e

    size = max(1, int(grid * sample_fraction))
    offset = (grid - size) // 2
    box = small.crop((offset, offset, offset + size, offset + size))

    n = size * size
    r, g, b = (int(total) // n for total in ImageStat.Stat(box).sum)
    return f"#{r:02X}{g:02X}{b:02X}"
