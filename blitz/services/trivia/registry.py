import threading
import time
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, Optional

from blitz import socketio
from . import store
from .identity import IdentitySubscription, RoundIdentity
from .round import RoundController, RoundError
from .timer import CountdownTimer


class RoundNotFound(RoundError):
    status_code = 404


@dataclass
class RoundEntry:
    round_id: str
    controller: RoundController
    identity: RoundIdentity
    subscription: IdentitySubscription
    last_seen: float = field(default_factory=time.monotonic)

    def touch(self, now: Optional[float] = None) -> None:
        self.last_seen = time.monotonic() if now is None else now

    def to_dict(self) -> dict:
        payload = self.controller.to_dict()
        payload['round_id'] = self.round_id
        payload['signed_in'] = self.identity() is not None
        return payload


class RoundRegistry:
    """In-memory home of every live round for one Flask app.

    Each round is wired to the database store, a countdown timer, Socket.IO
    pushes and an identity subscription that ``discard`` always releases.
    A round nobody has read or changed for ``ROUND_IDLE_TTL_SEC`` is evicted,
    whenever a new round is created and by a background sweep outside tests.
    """

    def __init__(self, app, clock=time.monotonic):
        self.app = app
        self.clock = clock
        self._rounds: Dict[str, RoundEntry] = {}
        self._lock = threading.Lock()
        self._sweeper_started = False

    def __len__(self):
        return len(self._rounds)

    def __contains__(self, round_id):
        return round_id in self._rounds

    def create(self, owner_id: Optional[int] = None) -> RoundEntry:
        self.sweep()
        self._ensure_sweeper()
        round_id = uuid.uuid4().hex
        identity = RoundIdentity(owner_id)
        controller = RoundController(
            question_source=self._fetch_questions,
            score_sink=self._record_score,
            identity=identity,
            timer=CountdownTimer(self.app, label=round_id),
            dispatch=self._dispatch,
            duration=int(self.app.config.get('QUESTION_DURATION_SEC', 20)),
            on_change=partial(self._publish, round_id),
            log=self.app.logger,
        )
        subscription = IdentitySubscription(self.app, identity.on_change).subscribe()
        entry = RoundEntry(round_id, controller, identity, subscription, last_seen=self.clock())
        with self._lock:
            self._rounds[round_id] = entry
        self.app.logger.debug(f"[round-create] round={round_id} owner={owner_id}")
        return entry

    def get(self, round_id: str) -> RoundEntry:
        entry = self._rounds.get(round_id)
        if entry is None:
            raise RoundNotFound('Round not found')
        entry.touch(self.clock())
        return entry

    def discard(self, round_id: str) -> bool:
        with self._lock:
            entry = self._rounds.pop(round_id, None)
        if entry is None:
            return False
        try:
            entry.controller.close()
        finally:
            entry.subscription.unsubscribe()
        self.app.logger.debug(f"[round-discard] round={round_id}")
        return True

    def clear(self) -> None:
        for round_id in list(self._rounds):
            self.discard(round_id)

    def sweep(self, now: Optional[float] = None) -> int:
        """Discard rounds idle for longer than ``ROUND_IDLE_TTL_SEC``; returns how many went."""
        ttl = float(self.app.config.get('ROUND_IDLE_TTL_SEC', 1800))
        now = self.clock() if now is None else now
        with self._lock:
            stale = [rid for rid, entry in self._rounds.items() if now - entry.last_seen >= ttl]
        for round_id in stale:
            if self.discard(round_id):
                self.app.logger.info(f"[round-evict] round={round_id} idle_for>={ttl}s")
        return len(stale)

    def _ensure_sweeper(self) -> None:
        if self._sweeper_started or self.app.config.get('TESTING'):
            return
        self._sweeper_started = True
        interval = float(self.app.config.get('ROUND_SWEEP_INTERVAL_SEC', 60))
        self.app.logger.debug(f"[round-sweeper-start] interval={interval}s")
        socketio.start_background_task(self._sweep_loop, interval)

    def _sweep_loop(self, interval):
        while True:
            socketio.sleep(interval)
            with self.app.app_context():
                try:
                    self.sweep()
                except Exception:
                    self.app.logger.exception("[round-sweep-error]")

    def _fetch_questions(self, week):
        return store.fetch_questions(week)

    def _record_score(self, user_id, week, score):
        store.record_score(user_id, week, score, policy=self.app.config.get('SCORE_POLICY', 'overwrite'))

    def _dispatch(self, fn, *args):
        if self.app.config.get('TESTING'):
            fn(*args)
            return

        def _runner():
            with self.app.app_context():
                fn(*args)

        socketio.start_background_task(_runner)

    def _publish(self, round_id, controller):
        entry = self._rounds.get(round_id)
        if entry is not None:
            entry.touch(self.clock())
        payload = controller.to_dict()
        payload['round_id'] = round_id
        socketio.emit('round_update', payload, to=f"round:{round_id}", namespace='/ws')
