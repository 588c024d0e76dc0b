import time

from trackguess import socketio
from trackguess.services.games.scheduler import EARLY_END, GAME_END, ROUND_END, RoundScheduler


def _recorder():
    calls = []

    def make(label):
        return lambda: calls.append(label)

    return calls, make


def test_timers_only_register_in_testing(flask_app, monkeypatch):
    scheduler = RoundScheduler(flask_app, socketio)
    started = []
    monkeypatch.setattr(socketio, 'start_background_task', lambda *a, **kw: started.append(a))

    scheduler.schedule_round_end('r1', 30, lambda: None)
    assert not scheduler.autostart
    assert started == []
    assert scheduler.pending('r1').kind == ROUND_END


def test_autostart_when_enabled_in_tests(flask_app, monkeypatch):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    scheduler = RoundScheduler(flask_app, socketio)
    started = []
    monkeypatch.setattr(socketio, 'start_background_task', lambda *a, **kw: started.append(a))

    token = scheduler.schedule_game_end('r1', 5, lambda: None)
    assert len(started) == 1
    assert started[0][1:] == ('r1', token, 5.0)


def test_scheduling_replaces_pending_timer(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    calls, make = _recorder()

    scheduler.schedule_round_end('r1', 30, make('first'))
    scheduler.schedule_game_end('r1', 5, make('second'))

    assert scheduler.fire('r1')
    assert calls == ['second']
    assert not scheduler.fire('r1')
    assert calls == ['second']


def test_cancel_prevents_fire(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    calls, make = _recorder()

    scheduler.schedule_round_end('r1', 30, make('round'))
    assert scheduler.cancel('r1')
    assert not scheduler.cancel('r1')
    assert not scheduler.fire('r1')
    assert calls == []


def test_early_end_only_pulls_deadline_forward(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    calls, make = _recorder()

    scheduler.schedule_round_end('soon', 1, make('round'))
    assert scheduler.schedule_early_end('soon', 3, make('early')) is None
    assert scheduler.pending('soon').kind == ROUND_END

    scheduler.schedule_round_end('late', 30, make('round'))
    assert scheduler.schedule_early_end('late', 3, make('early')) is not None
    assert scheduler.pending('late').kind == EARLY_END


def test_fire_due_runs_only_expired_timers(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    calls, make = _recorder()

    scheduler.schedule_round_end('a', 1, make('a'))
    scheduler.schedule_round_end('b', 60, make('b'))

    assert scheduler.fire_due(time.time() + 5) == 1
    assert calls == ['a']
    assert scheduler.pending('a') is None
    assert scheduler.pending('b') is not None


def test_worker_ignores_replaced_token(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    calls, make = _recorder()

    stale = scheduler.schedule_round_end('r1', 0, make('stale'))
    fresh = scheduler.schedule_early_end('r1', 0, make('fresh'))
    assert fresh is None  # the pending one is already due

    fresh = scheduler.schedule_game_end('r1', 0, make('fresh'))
    scheduler._worker('r1', stale, 0)
    assert calls == []
    scheduler._worker('r1', fresh, 0)
    assert calls == ['fresh']
    scheduler._worker('r1', fresh, 0)
    assert calls == ['fresh']


def test_callback_errors_are_contained(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)

    def boom():
        raise RuntimeError('kaboom')

    scheduler.schedule_round_end('r1', 0, boom)
    assert scheduler.fire('r1')
    assert scheduler.pending('r1') is None


def test_callback_runs_with_app_context_outside_request(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    seen = []

    def callback():
        from flask import current_app
        seen.append(current_app.name)

    scheduler.schedule_round_end('r1', 0, callback)
    scheduler.fire('r1')
    assert seen == [flask_app.name]


def test_shutdown_drops_everything(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    scheduler.schedule_round_end('a', 10, lambda: None)
    scheduler.schedule_game_end('b', 10, lambda: None)
    scheduler.shutdown()
    assert scheduler.pending('a') is None
    assert scheduler.pending('b') is None
    assert scheduler.fire_due(time.time() + 100) == 0


def test_early_end_never_replaces_game_end_or_other_rounds(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    calls, make = _recorder()

    scheduler.schedule_game_end('ended', 5, make('game'))
    assert scheduler.schedule_early_end('ended', 3, make('early'), round_number=1) is None
    assert scheduler.pending('ended').kind == GAME_END

    scheduler.schedule_round_end('next', 30, make('round 2'), round_number=2)
    assert scheduler.schedule_early_end('next', 3, make('early'), round_number=1) is None
    assert scheduler.pending('next').round_number == 2

    assert scheduler.schedule_early_end('empty', 3, make('early'), round_number=1) is None
    assert scheduler.pending('empty') is None

    scheduler.schedule_round_end('live', 30, make('round 1'), round_number=1)
    assert scheduler.schedule_early_end('live', 3, make('early'), round_number=1) is not None
    assert scheduler.pending('live').kind == EARLY_END
    assert scheduler.pending('live').round_number == 1


def test_cancel_for_round_leaves_newer_timer(flask_app):
    scheduler = RoundScheduler(flask_app, socketio)
    scheduler.schedule_round_end('r1', 30, lambda: None, round_number=2)

    assert not scheduler.cancel('r1', round_number=1)
    assert scheduler.pending('r1').round_number == 2
    assert scheduler.cancel('r1', round_number=2)
    assert scheduler.pending('r1') is None
