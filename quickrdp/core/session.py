"""
Cross-window coordination: a publish/subscribe bus owned by the session
coordinator, and the login countdown state machine.
"""

import enum
import logging
import math
import threading
import time
from collections import defaultdict

logger = logging.getLogger(__name__)

THEME_CHANGED = "theme-changed"
WINDOW_SHOWN = "window-shown"
WINDOW_HIDDEN = "window-hidden"
CREDENTIALS_CHANGED = "credentials-changed"
HOSTS_CHANGED = "hosts-changed"


class EventBus:
    def __init__(self):
        self._subscribers = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback):
        """Register ``callback`` for ``topic``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers[topic].append(callback)
        return lambda: self.unsubscribe(topic, callback)

    def unsubscribe(self, topic: str, callback):
        with self._lock:
            callbacks = self._subscribers.get(topic, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def publish(self, topic: str, payload=None):
        with self._lock:
            callbacks = list(self._subscribers.get(topic, []))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for %s failed", topic)


class CountdownState(enum.Enum):
    AWAITING_INPUT = "awaiting_input"
    COUNTDOWN_ACTIVE = "countdown_active"
    RESOLVED = "resolved"


class LoginCountdown:
    """
    AwaitingInput -> CountdownActive -> Resolved.

    Remaining time is always derived from a fixed deadline, so late or
    irregular ticks never accumulate drift.
    """

    def __init__(self, duration: float = 5, clock=time.monotonic, on_resolved=None):
        self.duration = duration
        self.clock = clock
        self.on_resolved = on_resolved
        self.state = CountdownState.AWAITING_INPUT
        self.resolution: str | None = None
        self._deadline: float | None = None

    def begin(self, has_credentials: bool, intentional_return: bool = False) -> bool:
        if self.state is not CountdownState.AWAITING_INPUT:
            return False
        if not has_credentials or intentional_return:
            return False
        self._deadline = self.clock() + self.duration
        self.state = CountdownState.COUNTDOWN_ACTIVE
        logger.debug("Login countdown started (%ss)", self.duration)
        return True

    @property
    def active(self) -> bool:
        return self.state is CountdownState.COUNTDOWN_ACTIVE

    def remaining_time(self) -> float:
        if not self.active:
            return 0.0
        return max(0.0, self._deadline - self.clock())

    def remaining(self) -> int:
        return math.ceil(self.remaining_time())

    def next_tick_delay(self) -> float:
        """Seconds until the displayed whole-second value next changes."""
        left = self.remaining_time()
        fraction = left - math.floor(left)
        if fraction > 0:
            return fraction
        return min(1.0, left)

    def tick(self) -> CountdownState:
        if self.active and self.clock() >= self._deadline:
            self._resolve("expired")
        return self.state

    def input_changed(self):
        if self.active:
            logger.debug("Login countdown cancelled by input")
            self._deadline = None
            self.state = CountdownState.AWAITING_INPUT

    def cancel(self):
        self.input_changed()

    def confirm(self):
        if self.state is not CountdownState.RESOLVED:
            self._resolve("confirmed")

    def _resolve(self, reason: str):
        self._deadline = None
        self.state = CountdownState.RESOLVED
        self.resolution = reason
        logger.debug("Login flow resolved (%s)", reason)
        if self.on_resolved:
            self.on_resolved(reason)


class SessionCoordinator:
    def __init__(self, countdown_seconds: float = 5, clock=time.monotonic):
        self.bus = EventBus()
        self.countdown_seconds = countdown_seconds
        self.clock = clock
        self.theme = "dark"
        self.intentional_return = False
        self.last_hidden: str | None = None
        self._visible: set[str] = set()

    def new_countdown(self, on_resolved=None) -> LoginCountdown:
        return LoginCountdown(self.countdown_seconds, clock=self.clock, on_resolved=on_resolved)

    def set_theme(self, theme: str):
        self.theme = theme
        self.bus.publish(THEME_CHANGED, theme)

    def show(self, window: str):
        self._visible.add(window)
        self.bus.publish(WINDOW_SHOWN, window)

    def hide(self, window: str):
        self._visible.discard(window)
        self.last_hidden = window
        self.bus.publish(WINDOW_HIDDEN, window)

    def is_visible(self, window: str) -> bool:
        return window in self._visible

    def return_to_login(self, from_window: str):
        self.intentional_return = True
        self.hide(from_window)
        self.show("login")

    def consume_intentional_return(self) -> bool:
        flag = self.intentional_return
        self.intentional_return = False
        return flag
