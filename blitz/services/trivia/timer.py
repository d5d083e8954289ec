import threading

from blitz import socketio


class CountdownTimer:
    """Per-round one second ticker.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - At most one live ticker: ``start`` retires the previous one, ``stop`` retires it for good
    - Each tick carries the key it was started with so the round can drop stale ticks
    """

    def __init__(self, app, label='', interval=1.0):
        self.app = app
        self.label = label
        self.interval = interval
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def enabled(self):
        if self.app.config.get('TESTING') and not self.app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
            return False
        return True

    @property
    def generation(self):
        return self._generation

    def start(self, key, on_tick):
        with self._lock:
            self._generation += 1
            generation = self._generation
        if not self.enabled:
            return
        self.app.logger.debug(f"[timer-set] round={self.label} key={key} interval={self.interval}s")
        socketio.start_background_task(self._worker, generation, key, on_tick)

    def stop(self):
        with self._lock:
            self._generation += 1

    def _worker(self, generation, key, on_tick):
        while True:
            socketio.sleep(self.interval)
            if generation != self._generation:
                self.app.logger.debug(f"[timer-abort] round={self.label} key={key} superseded")
                return
            with self.app.app_context():
                try:
                    on_tick(key)
                except Exception:
                    # Keep ticking; a round that already moved on drops the stale key
                    self.app.logger.exception(f"[timer-error] round={self.label} key={key}")
