import logging
import time
from typing import Callable, Dict, Optional

import cv2
from PySide6 import QtCore

logger = logging.getLogger(__name__)

_detector: Optional[cv2.QRCodeDetector] = None


def decode_frame(frame) -> Optional[str]:
    """
    Decodes the first QR code in a BGR frame.

    Returns:
        str | None: The payload, or None if no readable code is in view.
    """
    global _detector
    if frame is None:
        return None
    if _detector is None:
        _detector = cv2.QRCodeDetector()
    data, _points, _ = _detector.detectAndDecode(frame)
    return data or None


class QRScanner(QtCore.QObject):
    """
    Polls a webcam and emits each decoded QR payload.
    The same payload is reported at most once per cooldown window.

    Signals:
        token_scanned (str): A QR payload was read.
        camera_error (str): The camera could not be opened.
    """
    token_scanned = QtCore.Signal(str)
    camera_error = QtCore.Signal(str)

    def __init__(self, camera_index: int = 0, interval_ms: int = 100, cooldown: float = 3.0,
                 capture_factory: Callable = cv2.VideoCapture,
                 clock: Callable[[], float] = time.monotonic,
                 parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.camera_index = camera_index
        self.interval_ms = interval_ms
        self.cooldown = cooldown
        self._capture_factory = capture_factory
        self._clock = clock
        self._seen: Dict[str, float] = {}
        self.cap = None
        self.timer = QtCore.QTimer(self)
        self.timer.timeout.connect(self.poll)

    @property
    def running(self) -> bool:
        return self.timer.isActive()

    def start(self) -> bool:
        # 0 is usually the default webcam
        self.cap = self._capture_factory(self.camera_index)
        if not self.cap.isOpened():
            logger.error("Could not access camera %s", self.camera_index)
            self.camera_error.emit("Could not access webcam. Please check connection.")
            self.cap = None
            return False
        self.timer.start(self.interval_ms)
        logger.info("QR scanner started on camera %s", self.camera_index)
        return True

    def stop(self) -> None:
        self.timer.stop()
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    @QtCore.Slot()
    def poll(self) -> None:
        if self.cap is None:
            return
        ret, frame = self.cap.read()
        if not ret:
            return
        token = decode_frame(frame)
        if token:
            self.report(token)

    def report(self, token: str) -> bool:
        """Emits token_scanned unless the same token was reported within the cooldown."""
        now = self._clock()
        last = self._seen.get(token)
        if last is not None and now - last < self.cooldown:
            return False
        self._seen[token] = now
        self.token_scanned.emit(token)
        return True
