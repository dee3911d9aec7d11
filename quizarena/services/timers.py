"""Timers for the game controller.

The controller only needs two primitives: a periodic callback (the
per-question countdown) and a one-shot delayed callback (the pause after an
answer). Both hand back a :class:`TimerHandle` that can be cancelled.

:class:`BackgroundScheduler` runs them on Socket.IO background tasks inside
an app context. Under TESTING (unless ENABLE_SCHEDULER_IN_TESTS is set)
periodic timers are not started and delayed calls run inline, so request
tests stay deterministic.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

from flask import has_app_context

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, name: str = 'timer'):
        self.name = name
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler(ABC):

    @abstractmethod
    def every(self, interval: float, callback: Callable[[], None], name: str = 'interval') -> TimerHandle:
        ...

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None], name: str = 'delay') -> TimerHandle:
        ...


class BackgroundScheduler(Scheduler):

    def __init__(self, app, socketio_ext=None):
        if socketio_ext is None:
            from quizarena import socketio as socketio_ext
        self.app = app
        self.socketio = socketio_ext

    @property
    def enabled(self) -> bool:
        cfg = self.app.config
        return not (cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'))

    def _run(self, callback, handle: TimerHandle) -> None:
        try:
            if has_app_context():
                callback()
            else:
                with self.app.app_context():
                    callback()
        except Exception:
            logger.exception(f"[timer-error] name={handle.name}")

    def every(self, interval, callback, name='interval'):
        handle = TimerHandle(name)
        if not self.enabled:
            logger.debug(f"[timer-skip] name={name} scheduler disabled")
            return handle

        def _worker():
            while True:
                self.socketio.sleep(interval)
                if handle.cancelled:
                    return
                self._run(callback, handle)

        self.socketio.start_background_task(_worker)
        logger.debug(f"[timer-set] name={name} interval={interval}s")
        return handle

    def call_later(self, delay, callback, name='delay'):
        handle = TimerHandle(name)
        if not self.enabled or not delay:
            self._run(callback, handle)
            return handle

        def _worker():
            self.socketio.sleep(delay)
            if handle.cancelled:
                return
            self._run(callback, handle)

        self.socketio.start_background_task(_worker)
        logger.debug(f"[timer-set] name={name} delay={delay}s")
        return handle
