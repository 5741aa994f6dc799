import os
import sys
import threading
import select
from typing import Optional, Tuple
from bca.infrastructure.event_bus import EventBus
from bca.domain.events import RequestShutdown

try:
    import termios
    import tty
except ImportError:  # Windows: no cbreak mode, listener stays idle
    termios = None
    tty = None

STOP_KEYS: Tuple[str, ...] = ('S', 's', '\x03')  # S or Ctrl+C


class KeyboardListener:
    """Listens for the stop key in a background thread.

    The first stop key publishes RequestShutdown and ends the listener;
    it never sees job state.
    """

    def __init__(self, event_bus: EventBus, stop_keys: Tuple[str, ...] = STOP_KEYS):
        self.event_bus = event_bus
        self.stop_keys = stop_keys
        self._stop_event = threading.Event()
        self._signal_lock = threading.Lock()
        self._signalled = False
        self._thread: Optional[threading.Thread] = None

    @property
    def signalled(self) -> bool:
        return self._signalled

    def _signal_stop(self) -> bool:
        """Publishes RequestShutdown once; later calls are no-ops."""
        with self._signal_lock:
            if self._signalled:
                return False
            self._signalled = True
        self.event_bus.publish(RequestShutdown())
        self._stop_event.set()
        return True

    def _run(self):
        """Main loop for the listener thread."""
        if termios is None or not sys.stdin.isatty():
            return

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        try:
            tty.setcbreak(fd)

            while not self._stop_event.is_set():
                if fd in select.select([fd], [], [], 0.1)[0]:
                    try:
                        raw = os.read(fd, 1)
                    except OSError:
                        continue
                    if not raw:
                        continue
                    key = raw.decode('utf-8', errors='replace')
                    if key in self.stop_keys:
                        self._signal_stop()
                        break
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)

    def start(self):
        """Starts the listener thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self):
        """Stops the listener thread."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=1.0)
