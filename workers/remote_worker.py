import logging
from typing import Any, Callable, Optional, Set

from PySide6 import QtCore

logger = logging.getLogger(__name__)


class WorkerSignals(QtCore.QObject):
    """
    Defines the signals available from a running worker thread.

    Attributes:
        finished (worker, object): Emitted with the call's return value.
        error (worker, Exception): Emitted with the exception if the call fails.
    """
    finished = QtCore.Signal(object, object)
    error = QtCore.Signal(object, object)


class RemoteCallWorker(QtCore.QRunnable):
    """
    Background worker for a single store or service call.
    Keeps network latency off the event loop; the result is delivered through signals.
    """
    def __init__(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any):
        super().__init__()
        self.label = label
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.on_done: Optional[Callable[[Any], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None
        self.signals = WorkerSignals()
        # The host keeps the Python wrapper alive until the result is delivered
        self.setAutoDelete(False)

    @QtCore.Slot()
    def run(self) -> None:
        try:
            result = self.fn(*self.args, **self.kwargs)
        except Exception as e:
            self.signals.error.emit(self, e)
            return
        self.signals.finished.emit(self, result)


class WorkerHost(QtCore.QObject):
    """
    Base for objects that run remote calls in the background.

    Results are handled in the host's own thread: the worker signals are connected
    to slots of this QObject, so Qt queues them back to the event loop.

    Args:
        runner (callable, optional): Starts a worker. Defaults to the global thread pool.
    """
    def __init__(self, runner: Optional[Callable[[RemoteCallWorker], None]] = None,
                 parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self._runner = runner or QtCore.QThreadPool.globalInstance().start
        self._workers: Set[RemoteCallWorker] = set()

    @property
    def busy(self) -> bool:
        return bool(self._workers)

    def _submit(self, label: str, fn: Callable[..., Any], *args: Any,
                on_done: Optional[Callable[[Any], None]] = None,
                on_error: Optional[Callable[[Exception], None]] = None,
                **kwargs: Any) -> RemoteCallWorker:
        worker = RemoteCallWorker(label, fn, *args, **kwargs)
        worker.on_done = on_done
        worker.on_error = on_error
        worker.signals.finished.connect(self._deliver_result)
        worker.signals.error.connect(self._deliver_error)
        self._workers.add(worker)
        logger.debug("Submitting %s", label)
        self._runner(worker)
        return worker

    @QtCore.Slot(object, object)
    def _deliver_result(self, worker: RemoteCallWorker, result: Any) -> None:
        self._workers.discard(worker)
        if worker.on_done is not None:
            worker.on_done(result)

    @QtCore.Slot(object, object)
    def _deliver_error(self, worker: RemoteCallWorker, exc: Exception) -> None:
        self._workers.discard(worker)
        logger.debug("%s failed: %s", worker.label, exc)
        if worker.on_error is not None:
            worker.on_error(exc)
