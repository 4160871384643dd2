"""
Render Surface - Off-screen canvas the video export draws cue images onto.

QImage/QPainter are safe to use outside the GUI thread, so the surface can
be driven from a background export thread.
"""
import base64
import binascii

from PyQt6.QtCore import QByteArray, QRectF, Qt
from PyQt6.QtGui import QColor, QImage, QPainter

from core.errors import FrameLoadFailure
from models.cue import ImageRef


def decode_image(ref: ImageRef) -> QImage:
    """Decode an image reference into a QImage

    Args:
        ref: QImage, encoded image bytes, or a base64 / data: URL string

    Raises:
        FrameLoadFailure: if the reference cannot be decoded
    """
    if isinstance(ref, QImage):
        if ref.isNull():
            raise FrameLoadFailure("Image handle is empty")
        return ref

    if isinstance(ref, str):
        payload = ref.split(",", 1)[1] if ref.startswith("data:") else ref
        try:
            ref = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise FrameLoadFailure(f"Invalid base64 image data: {e}") from e

    if isinstance(ref, (bytes, bytearray, memoryview)):
        image = QImage.fromData(QByteArray(bytes(ref)))
        if image.isNull():
            raise FrameLoadFailure("Image bytes could not be decoded")
        return image

    raise FrameLoadFailure(f"Unsupported image reference type: {type(ref).__name__}")


class RenderSurface:
    """Fixed-size black canvas; images are drawn with cover scaling."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self._image = QImage(width, height, QImage.Format.Format_RGB32)
        self._image.fill(QColor("#000000"))
        self._version = 0  # Incremented on every draw

    @property
    def version(self) -> int:
        return self._version

    @property
    def has_drawn(self) -> bool:
        """Whether any image has been drawn since creation"""
        return self._version > 0

    def draw_cover(self, image: QImage) -> None:
        """Fill black, then draw *image* scaled to cover the whole surface."""
        painter = QPainter(self._image)
        try:
            painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
            painter.fillRect(0, 0, self.width, self.height, QColor("#000000"))

            cover_scale = max(self.width / image.width(), self.height / image.height())
            draw_w = image.width() * cover_scale
            draw_h = image.height() * cover_scale
            cx = (self.width - draw_w) / 2
            cy = (self.height - draw_h) / 2
            painter.drawImage(QRectF(cx, cy, draw_w, draw_h), image)
        finally:
            painter.end()
        self._version += 1

    def snapshot(self) -> QImage:
        """Detached copy of the current surface contents"""
        return self._image.copy()


def fit_inside(image: QImage, width: int, height: int) -> QImage:
    """Scale *image* to fit inside width x height, centered over black."""
    canvas = QImage(width, height, QImage.Format.Format_RGB32)
    canvas.fill(QColor("#000000"))
    scaled = image.scaled(
        width,
        height,
        Qt.AspectRatioMode.KeepAspectRatio,
        Qt.TransformationMode.SmoothTransformation,
    )
    painter = QPainter(canvas)
    try:
        painter.drawImage((width - scaled.width()) // 2, (height - scaled.height()) // 2, scaled)
    finally:
        painter.end()
    return canvas
