import os
import sys

import numpy as np
import pytest

# Headless Qt for QImage/QPainter and QThread tests
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# Ensure src/ is on the path so that absolute imports work.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from models.audio import SampleBuffer


@pytest.fixture(scope="session")
def qapp():
    from PyQt6.QtGui import QGuiApplication

    app = QGuiApplication.instance()
    if app is None:
        app = QGuiApplication([])
    yield app


def tone(duration: float, rate: int, channels: int = 1, freq: float = 440.0, amp: float = 0.5) -> SampleBuffer:
    """Sine test buffer"""
    t = np.arange(int(round(duration * rate))) / rate
    wave = (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    return SampleBuffer.from_channels([wave] * channels, rate)


@pytest.fixture
def make_tone():
    return tone


def png(color: str = "#ff0000", width: int = 64, height: int = 48) -> bytes:
    """Solid-color PNG bytes"""
    from PyQt6.QtCore import QBuffer, QByteArray, QIODevice
    from PyQt6.QtGui import QColor, QImage

    img = QImage(width, height, QImage.Format.Format_RGB32)
    img.fill(QColor(color))
    data = QByteArray()
    buf = QBuffer(data)
    buf.open(QIODevice.OpenModeFlag.WriteOnly)
    img.save(buf, "PNG")
    buf.close()
    return data.data()


@pytest.fixture
def make_png(qapp):
    return png
