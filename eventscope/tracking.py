"""
================================================================================
USER INTERACTION TRACKING
================================================================================

Purpose: Collect user interaction events (clicks, navigation, uploads,
authentication changes, ...) and persist them to the ``user_events`` table in
batches instead of one network call per interaction.

How it works:
1. Every tracked interaction becomes a full event dict and is appended to an
   in-memory queue
2. The queue is flushed when it reaches ``batch_size`` events, and on a fixed
   timer driven by one process-wide ``FlushScheduler`` thread
3. A failed timed flush puts its batch back at the head of the queue
4. ``flush()`` force-flushes everything that is left (sign-out, session end,
   exit). A failed forced flush drops the events
5. Anonymous visitors get an ``anon_...`` id. When they sign in, queued
   events are re-attributed to the authenticated id

This module has no Streamlit dependency. ``eventscope.tracking_widgets``
wires it into the app.
================================================================================
"""

import io
import logging
import random
import string
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, MutableMapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_FLUSH_INTERVAL = 5.0
SCROLL_THROTTLE_SECONDS = 1.0
MAX_CAPTURED_TEXT_LENGTH = 200

ANONYMOUS_PREFIX = "anon_"
ANONYMOUS_ID_KEY = "anonymous_user_id"

_BASE36 = string.digits + string.ascii_lowercase


def _random_suffix(length=9):
    return "".join(random.choice(_BASE36) for _ in range(length))


def _now_ms():
    return int(time.time() * 1000)


def generate_session_id() -> str:
    """Return a new id of the form ``session_<ms>_<9 chars>``."""
    return f"session_{_now_ms()}_{_random_suffix()}"


def generate_anonymous_id() -> str:
    """Return a new id of the form ``anon_<ms>_<9 chars>``."""
    return f"{ANONYMOUS_PREFIX}{_now_ms()}_{_random_suffix()}"


def is_anonymous_id(user_id: Optional[str]) -> bool:
    return bool(user_id) and user_id.startswith(ANONYMOUS_PREFIX)


def get_element_text(text: Optional[str]) -> str:
    """Cut captured element text to 200 characters and trim it."""
    return (text or "")[:MAX_CAPTURED_TEXT_LENGTH].strip()


def extract_file_metadata(uploaded_file) -> Dict[str, Any]:
    """Build file metadata for an uploaded file.

    Works with Streamlit's ``UploadedFile`` and any object exposing ``name``,
    ``type``, ``size`` and ``getvalue()``. Image dimensions are read with
    Pillow; unreadable images are logged and skipped.
    """
    file_type = getattr(uploaded_file, "type", "") or ""
    metadata = {
        "file_name": uploaded_file.name,
        "file_type": file_type,
        "file_size": getattr(uploaded_file, "size", None),
        "last_modified": getattr(uploaded_file, "last_modified", None),
        "mime_type": file_type,
    }

    if file_type.startswith("image/"):
        try:
            from PIL import Image

            with Image.open(io.BytesIO(uploaded_file.getvalue())) as image:
                width, height = image.size
            metadata["dimensions"] = {"width": width, "height": height}
        except Exception as e:
            logger.warning(f"Could not extract image dimensions from {uploaded_file.name}: {e}")

    return metadata


class EventTracker:
    """Queue of tracked user events, flushed in batches of ``batch_size``.

    Timed flushes come from a ``FlushScheduler`` the tracker is registered with.

    Args:
        sink: Callable that persists a list of event dicts. It may raise.
        batch_size: Queue length that triggers an immediate flush.
        user_id: Authenticated user id, if already known.
        id_store: Mapping used to persist the anonymous id (for example
            ``st.session_state``). Defaults to a private dict.
    """

    def __init__(self, sink: Callable[[List[Dict[str, Any]]], Any],
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 user_id: Optional[str] = None,
                 id_store: Optional[MutableMapping] = None):
        self.sink = sink
        self.batch_size = batch_size
        self.session_id = generate_session_id()
        self.id_store = id_store if id_store is not None else {}

        self.current_route = "/"
        self.page_url = ""
        self.page_title = ""

        self._queue: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._last_scroll = 0.0
        self._user_id = user_id
        self.ensure_user_id()

    # -- identity -----------------------------------------------------------

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def queue_size(self) -> int:
        with self._lock:
            return len(self._queue)

    def ensure_user_id(self) -> str:
        """Return the current user id, creating an anonymous one if needed.

        A stored anonymous id is reused so one visitor keeps one id.
        """
        if not self._user_id:
            stored = self.id_store.get(ANONYMOUS_ID_KEY)
            if not stored:
                stored = generate_anonymous_id()
                self.id_store[ANONYMOUS_ID_KEY] = stored
            self._user_id = stored
        return self._user_id

    def on_signed_in(self, new_user_id: str) -> None:
        """Switch to an authenticated id and migrate queued anonymous events."""
        old_user_id = self._user_id
        self._user_id = new_user_id
        migration = is_anonymous_id(old_user_id)

        self.track_event(
            event_type="user_authenticated",
            event_category="authentication",
            metadata={
                "previous_user_id": old_user_id,
                "new_user_id": new_user_id,
                "migration_occurred": migration,
            },
        )
        if migration:
            self.migrate_anonymous_events(old_user_id, new_user_id)

    def on_signed_out(self) -> None:
        """Start a fresh anonymous identity after sign-out."""
        new_anonymous_id = generate_anonymous_id()
        self.id_store[ANONYMOUS_ID_KEY] = new_anonymous_id
        self._user_id = new_anonymous_id
        self.track_event(event_type="user_signed_out", event_category="authentication")

    def update_user_id(self, auth_user_id: Optional[str]) -> None:
        """Sync with the auth state (after login or on session restore)."""
        if auth_user_id:
            old_user_id = self._user_id
            if old_user_id != auth_user_id:
                if is_anonymous_id(old_user_id):
                    self.migrate_anonymous_events(old_user_id, auth_user_id)
                self._user_id = auth_user_id
        else:
            self.ensure_user_id()

    def migrate_anonymous_events(self, old_user_id: str, new_user_id: str) -> int:
        """Re-attribute queued events from ``old_user_id`` to ``new_user_id``.

        Only the in-memory queue is rewritten; rows already stored keep their
        anonymous id.
        """
        migrated = 0
        with self._lock:
            for event in self._queue:
                if event.get("user_id") == old_user_id:
                    event["user_id"] = new_user_id
                    migrated += 1

        self.track_event(
            event_type="events_migrated",
            event_category="system",
            metadata={
                "from_user_id": old_user_id,
                "to_user_id": new_user_id,
                "events_migrated": migrated,
            },
        )
        return migrated

    # -- tracking -----------------------------------------------------------

    def track_event(self, event_type: Optional[str] = None, event_category: Optional[str] = None,
                    **fields) -> Dict[str, Any]:
        """Queue one event, flushing if the queue reached ``batch_size``.

        Keyword arguments map onto ``user_events`` columns (``element_id``,
        ``x_coordinate``, ``metadata``, ``file_metadata``, ...).
        """
        event = {
            "user_id": self.ensure_user_id(),
            "event_type": event_type or "unknown",
            "event_category": event_category or "interaction",
            "element_type": fields.get("element_type"),
            "element_id": fields.get("element_id"),
            "element_class": fields.get("element_class"),
            "element_text": fields.get("element_text"),
            "page_url": fields.get("page_url") or self.page_url,
            "page_title": fields.get("page_title") or self.page_title,
            "route_path": fields.get("route_path") or self.current_route,
            "x_coordinate": fields.get("x_coordinate"),
            "y_coordinate": fields.get("y_coordinate"),
            "viewport_width": fields.get("viewport_width"),
            "viewport_height": fields.get("viewport_height"),
            "scroll_position": fields.get("scroll_position"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self.session_id,
            "metadata": fields.get("metadata") or {},
            "duration_ms": fields.get("duration_ms"),
            "file_metadata": fields.get("file_metadata"),
        }

        with self._lock:
            self._queue.append(event)
            queue_full = len(self._queue) >= self.batch_size

        if queue_full:
            self._flush()
        return event

    def track_click(self, element_type: str, element_id: Optional[str] = None,
                    element_class: Optional[str] = None, text: Optional[str] = None,
                    x: Optional[int] = None, y: Optional[int] = None):
        return self.track_event(
            event_type="click",
            event_category="interaction",
            element_type=element_type.lower(),
            element_id=element_id or None,
            element_class=element_class or None,
            element_text=get_element_text(text),
            x_coordinate=x,
            y_coordinate=y,
        )

    def track_hover(self, element_type: str, element_id: Optional[str] = None,
                    element_class: Optional[str] = None, text: Optional[str] = None,
                    x: Optional[int] = None, y: Optional[int] = None,
                    duration_ms: Optional[int] = None):
        return self.track_event(
            event_type="hover",
            event_category="interaction",
            element_type=element_type.lower(),
            element_id=element_id or None,
            element_class=element_class or None,
            element_text=get_element_text(text),
            x_coordinate=x,
            y_coordinate=y,
            duration_ms=duration_ms,
        )

    def track_scroll(self, scroll_position: int):
        """Queue a scroll event, at most one per second. Returns None when throttled."""
        now = time.monotonic()
        if self._last_scroll and now - self._last_scroll < SCROLL_THROTTLE_SECONDS:
            return None
        self._last_scroll = now
        return self.track_event(
            event_type="scroll",
            event_category="interaction",
            scroll_position=scroll_position,
        )

    def track_navigation(self, route_path: str, page_url: Optional[str] = None,
                         page_title: Optional[str] = None):
        """Record a page change and remember it as the context for later events."""
        self.current_route = route_path
        if page_url:
            self.page_url = page_url
        if page_title:
            self.page_title = page_title
        return self.track_event(
            event_type="navigation",
            event_category="navigation",
            route_path=route_path,
            page_url=self.page_url,
            page_title=self.page_title,
        )

    def track_visibility_change(self, hidden: bool):
        return self.track_event(
            event_type="visibility_change",
            event_category="system",
            metadata={
                "hidden": hidden,
                "visibility_state": "hidden" if hidden else "visible",
            },
        )

    def track_file_upload(self, uploaded_file, additional_metadata: Optional[Dict[str, Any]] = None):
        return self.track_event(
            event_type="file_upload",
            event_category="file",
            element_type="input",
            element_id="file_input",
            file_metadata=extract_file_metadata(uploaded_file),
            metadata=additional_metadata,
        )

    # -- flushing -----------------------------------------------------------

    def _flush(self, force: bool = False) -> int:
        """Send queued events to the sink. Returns the number of events sent.

        A normal flush takes at most ``batch_size`` events and re-queues them
        at the head on failure. A forced flush takes everything and drops it
        on failure.
        """
        with self._lock:
            if not self._queue:
                return 0
            if force:
                batch = self._queue
                self._queue = []
            else:
                batch = self._queue[:self.batch_size]
                del self._queue[:self.batch_size]

        try:
            self.sink(batch)
            return len(batch)
        except Exception as e:
            logger.error(f"Error flushing {len(batch)} user events: {e}")
            if not force:
                with self._lock:
                    self._queue[:0] = batch
            return 0

    def flush(self) -> int:
        """Force-flush every queued event (sign-out, session end, exit)."""
        return self._flush(force=True)


class FlushScheduler:
    """Runs the timed flush of many trackers on one daemon thread.

    Each tracker is registered with an optional ``is_alive`` callable. Once it
    returns False the tracker gets a final forced flush and is released, so
    ended sessions leave neither threads nor references behind.
    """

    def __init__(self, flush_interval: float = DEFAULT_FLUSH_INTERVAL):
        self.flush_interval = flush_interval
        self._trackers: Dict[str, tuple] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def tracker_count(self) -> int:
        with self._lock:
            return len(self._trackers)

    def register(self, tracker: EventTracker, is_alive: Optional[Callable[[], bool]] = None) -> None:
        """Add ``tracker`` to the timed flush. Registering twice is a no-op."""
        with self._lock:
            self._trackers.setdefault(tracker.session_id, (tracker, is_alive))

    def unregister(self, tracker: EventTracker) -> None:
        with self._lock:
            self._trackers.pop(tracker.session_id, None)

    def run_once(self) -> int:
        """Flush every registered tracker once and release the ended ones.

        Returns the number of events sent.
        """
        with self._lock:
            entries = list(self._trackers.items())

        sent = 0
        for session_id, (tracker, is_alive) in entries:
            try:
                ended = is_alive is not None and not is_alive()
            except Exception as e:
                logger.warning(f"Could not check session of tracker {session_id}: {e}")
                ended = False

            if ended:
                sent += tracker.flush()
                with self._lock:
                    self._trackers.pop(session_id, None)
                logger.debug(f"Released event tracker {session_id}")
            else:
                sent += tracker._flush()
        return sent

    def start(self) -> None:
        """Start the flush thread (idempotent)."""
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="event-tracker-flush", daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.wait(self.flush_interval):
            self.run_once()

    def close(self) -> int:
        """Stop the thread and force-flush every registered tracker."""
        self._stop.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.flush_interval)

        with self._lock:
            trackers = [tracker for tracker, _ in self._trackers.values()]
            self._trackers.clear()
        return sum(tracker.flush() for tracker in trackers)
