"""Thumbnail generation for queued media.

Images get a JPEG thumbnail via Pillow (EXIF orientation applied), videos an
animated GIF via ffmpeg.
"""
from pathlib import Path
from typing import Optional
import logging
import subprocess

from PIL import Image, ImageOps, UnidentifiedImageError

from librarian.lib.errors import ThumbnailError

logger = logging.getLogger(__name__)

IMAGE_THUMBNAIL_WIDTH = 320
GIF_FPS = 3
GIF_WIDTH = 200


def thumbnail_suffix(mime_type: str) -> str:
    return '.jpg' if mime_type.startswith('image/') else '.gif'


def thumbnail_content_type(mime_type: str) -> str:
    """Content type a thumbnail of the given media type is served with."""
    return 'image/jpeg' if mime_type.startswith('image/') else 'image/gif'


def generate_image_thumbnail(source_path: Path | str, thumb_path: Path | str, width: int = IMAGE_THUMBNAIL_WIDTH) -> Path:
    """Generate a JPEG thumbnail scaled to a fixed width.

    Args:
        source_path: Path to source image file
        thumb_path: Output path
        width: Thumbnail width in pixels; height keeps the aspect ratio

    Returns:
        Path to generated thumbnail

    Raises:
        ThumbnailError: If the image cannot be read or saved
    """
    source_path = Path(source_path)
    thumb_path = Path(thumb_path)

    try:
        with Image.open(source_path) as img:
            # Apply EXIF orientation before resizing
            img = ImageOps.exif_transpose(img)

            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')

            height = max(1, round(img.height * width / img.width))
            img = img.resize((width, height), Image.Resampling.LANCZOS)
            img.save(thumb_path, 'JPEG', quality=85, optimize=True)
    except (OSError, UnidentifiedImageError, ValueError) as e:
        raise ThumbnailError(f"Thumbnail generation failed for {source_path}: {e}") from e

    return thumb_path


def generate_video_thumbnail(
    source_path: Path | str,
    thumb_path: Path | str,
    ffmpeg_path: str = 'ffmpeg',
    timeout: Optional[float] = None,
    fps: int = GIF_FPS,
    width: int = GIF_WIDTH
) -> Path:
    """Generate a looping GIF preview of a video with ffmpeg.

    The palette is generated and applied in one pass (split/palettegen/paletteuse).

    Raises:
        ThumbnailError: If ffmpeg is missing, fails or times out
    """
    filters = (
        f"fps={fps},scale={width}:-1:flags=lanczos,"
        "split[s0][s1];[s0]palettegen[p];[s1][p]paletteuse"
    )
    cmd = [
        ffmpeg_path, '-y', '-i', str(source_path),
        '-vf', filters,
        '-loop', '0', '-loglevel', 'error',
        str(thumb_path),
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        Path(thumb_path).unlink(missing_ok=True)
        raise ThumbnailError(f"ffmpeg timed out after {timeout}s for {source_path}") from e
    except OSError as e:
        raise ThumbnailError(f"Could not run ffmpeg ({ffmpeg_path}): {e}") from e

    if result.returncode != 0 or result.stderr.strip():
        Path(thumb_path).unlink(missing_ok=True)
        raise ThumbnailError(f"ffmpeg error for {source_path}: {result.stderr.strip()}")

    return Path(thumb_path)


class Thumbnailer:
    """
    Writes thumbnails into one directory, named after the source file's stem.

    Args:
        thumb_dir: Directory to save thumbnails
        ffmpeg_path: ffmpeg executable used for videos
        timeout: Seconds before an ffmpeg run is killed (None: no limit)
    """

    def __init__(self, thumb_dir: Path | str, ffmpeg_path: str = 'ffmpeg', timeout: Optional[float] = None):
        self.thumb_dir = Path(thumb_dir)
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def generate(self, source_path: Path | str, mime_type: str) -> Path:
        source_path = Path(source_path)
        self.thumb_dir.mkdir(parents=True, exist_ok=True)
        thumb_path = self.thumb_dir / f"{source_path.stem}{thumbnail_suffix(mime_type)}"

        if mime_type.startswith('image/'):
            return generate_image_thumbnail(source_path, thumb_path)
        if mime_type.startswith('video/'):
            return generate_video_thumbnail(source_path, thumb_path, self.ffmpeg_path, self.timeout)
        raise ThumbnailError(f"Cannot generate a thumbnail for MIME type {mime_type!r}")
