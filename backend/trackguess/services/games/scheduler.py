import itertools
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from flask import current_app, has_app_context

from trackguess import db

ROUND_END = 'round_end'
EARLY_END = 'early_end'
GAME_END = 'game_end'


@dataclass
class PendingTimer:
    token: int
    kind: str
    deadline: float
    on_fire: Callable[[], None]
    round_number: Optional[int] = None


class RoundScheduler:
    """One pending one-shot timer per room.

    - Scheduling a timer replaces whatever the room had pending, except an
      early end, which only ever replaces that round's own round-end timer
    - A timer is removed from its slot before its callback runs, so a fire
      racing a cancel or a replacement runs at most once
    - Callbacks run inside an app context and never raise into the worker
    - In TESTING mode timers are only registered (unless
      ENABLE_SCHEDULER_IN_TESTS); tests drive them with fire()/fire_due()
    """

    def __init__(self, app, socketio):
        self._app = app
        self._socketio = socketio
        self._lock = threading.Lock()
        self._pending: Dict[str, PendingTimer] = {}
        self._tokens = itertools.count(1)

    @property
    def autostart(self):
        cfg = self._app.config
        return not cfg.get('TESTING') or cfg.get('ENABLE_SCHEDULER_IN_TESTS', False)

    def schedule_round_end(self, room_code: str, delay: float, on_fire: Callable[[], None],
                           round_number: Optional[int] = None) -> int:
        return self._schedule(room_code, ROUND_END, delay, on_fire, round_number)

    def schedule_early_end(self, room_code: str, delay: float, on_fire: Callable[[], None],
                           round_number: Optional[int] = None) -> Optional[int]:
        """Pull a live round's end forward.

        Applies only while the slot holds the round-end timer of ``round_number``
        and that timer is due later; anything else (a game-end timer, another
        round's timer, an empty slot) is left alone and None is returned.
        """

        def replaces(current, timer):
            return (
                current is not None
                and current.kind == ROUND_END
                and (round_number is None or current.round_number == round_number)
                and current.deadline > timer.deadline
            )

        return self._schedule(room_code, EARLY_END, delay, on_fire, round_number, only_if=replaces)

    def schedule_game_end(self, room_code: str, delay: float, on_fire: Callable[[], None]) -> int:
        return self._schedule(room_code, GAME_END, delay, on_fire)

    def cancel(self, room_code: str, round_number: Optional[int] = None) -> bool:
        """Drop the room's pending timer; with ``round_number``, only if it belongs to that round."""
        with self._lock:
            timer = self._pending.get(room_code)
            if timer is not None and round_number is not None and timer.round_number != round_number:
                timer = None
            if timer is not None:
                del self._pending[room_code]
        if timer is not None:
            self._app.logger.info(f"[timer-cancel] room={room_code} kind={timer.kind} round={timer.round_number}")
        return timer is not None

    def pending(self, room_code: str) -> Optional[PendingTimer]:
        with self._lock:
            return self._pending.get(room_code)

    def fire(self, room_code: str) -> bool:
        """Run the room's pending timer now, if any."""
        with self._lock:
            timer = self._pending.pop(room_code, None)
        if timer is None:
            return False
        self._run(room_code, timer)
        return True

    def fire_due(self, now: Optional[float] = None) -> int:
        """Run every timer whose deadline has passed; returns how many ran."""
        now = time.time() if now is None else now
        with self._lock:
            due = [(code, t) for code, t in self._pending.items() if t.deadline <= now]
            for code, _ in due:
                del self._pending[code]
        for code, timer in sorted(due, key=lambda item: item[1].deadline):
            self._run(code, timer)
        return len(due)

    def shutdown(self) -> None:
        with self._lock:
            dropped = len(self._pending)
            self._pending.clear()
        if dropped:
            self._app.logger.info(f"[timer-shutdown] dropped={dropped}")

    def _schedule(self, room_code, kind, delay, on_fire, round_number=None, only_if=None):
        delay = max(0.0, float(delay))
        timer = PendingTimer(next(self._tokens), kind, time.time() + delay, on_fire, round_number)
        with self._lock:
            current = self._pending.get(room_code)
            applied = only_if is None or only_if(current, timer)
            if applied:
                self._pending[room_code] = timer
        if not applied:
            self._app.logger.info(
                f"[timer-skip] room={room_code} kind={kind} pending={current.kind if current else None}"
            )
            return None
        if current is not None:
            self._app.logger.info(f"[timer-replace] room={room_code} old={current.kind} new={kind}")
        self._app.logger.info(
            f"[timer-set] room={room_code} kind={kind} round={round_number} delay={delay}s deadline={timer.deadline}"
        )
        if self.autostart:
            self._socketio.start_background_task(self._worker, room_code, timer.token, delay)
        return timer.token

    def _consume(self, room_code, token) -> Optional[PendingTimer]:
        with self._lock:
            timer = self._pending.get(room_code)
            if timer is None or timer.token != token:
                return None
            del self._pending[room_code]
            return timer

    def _worker(self, room_code: str, token: int, delay: float):
        hb = int(self._app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
        if hb > 0:
            slept = 0.0
            while slept < delay:
                step = min(hb, delay - slept)
                self._socketio.sleep(step)
                slept += step
                self._app.logger.info(
                    f"[timer-heartbeat] room={room_code} token={token} remaining={max(0, delay - slept)}s"
                )
        else:
            self._socketio.sleep(delay)

        timer = self._consume(room_code, token)
        if timer is None:
            self._app.logger.info(f"[timer-abort] room={room_code} token={token} cancelled or replaced")
            return
        self._run(room_code, timer)

    def _run(self, room_code, timer):
        self._app.logger.info(f"[timer-fire] room={room_code} kind={timer.kind}")
        if has_app_context() and current_app._get_current_object() is self._app:
            self._invoke(room_code, timer)
            return
        with self._app.app_context():
            self._invoke(room_code, timer)

    def _invoke(self, room_code, timer):
        try:
            timer.on_fire()
        except Exception:
            db.session.rollback()
            self._app.logger.exception(f"[timer-error] room={room_code} kind={timer.kind}")
