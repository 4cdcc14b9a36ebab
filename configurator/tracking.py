"""
Configuration session analytics.

The tracker is an ordinary object owned by whoever drives a configuration
session; events are queued and handed to an injected sink in batches.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

CRITICAL_EVENTS = ("config_completed", "config_abandoned")


@dataclass
class AnalyticsEvent:
	event_type: str
	product_id: str
	session_id: str
	timestamp: datetime
	option_id: Optional[str] = None
	value_id: Optional[str] = None
	configuration: Dict[str, str] = field(default_factory=dict)
	metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TrackedSession:
	session_id: str
	product_id: str
	started_at: datetime
	required_options: List[str]
	configuration: Dict[str, str] = field(default_factory=dict)
	completion_rate: float = 0.0
	abandonment_point: Optional[str] = None
	events: List[AnalyticsEvent] = field(default_factory=list)


EventSink = Callable[[List[AnalyticsEvent]], None]


class SessionTracker:
	def __init__(
		self,
		sink: EventSink,
		*,
		clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
		batch_size: int = 20,
	):
		self.sink = sink
		self.clock = clock
		self.batch_size = batch_size
		self.session: Optional[TrackedSession] = None
		self._queue: List[AnalyticsEvent] = []
		self._stopped = False

	@classmethod
	def from_settings(cls, sink: EventSink, settings: Optional[Settings] = None) -> "SessionTracker":
		settings = settings or get_settings()
		return cls(sink, batch_size=settings.TRACKER_BATCH_SIZE)

	@property
	def pending(self) -> List[AnalyticsEvent]:
		return list(self._queue)

	def start(self, product_id: str, required_options: Iterable[str] = ()) -> str:
		self._ensure_running()
		session_id = uuid.uuid4().hex
		self.session = TrackedSession(
			session_id=session_id,
			product_id=product_id,
			started_at=self.clock(),
			required_options=list(required_options),
		)
		self._track("config_started")
		return session_id

	def track_option_selected(self, option_id: str, value_id: str, configuration: Mapping[str, str]) -> None:
		if self.session is None:
			return
		self.session.configuration = dict(configuration)
		self._track(
			"option_selected",
			option_id=option_id,
			value_id=value_id,
			metadata={"total_options": len(configuration), "session_duration": self._duration()},
		)

	def track_price_viewed(self, price: Any, breakdown: Any = None) -> None:
		if self.session is None:
			return
		self._track("price_viewed", metadata={"current_price": str(price), "price_breakdown": breakdown})

	def track_auto_selection_applied(self, option_id: str, value_id: str) -> None:
		if self.session is None:
			return
		self._track("recommendation_applied", option_id=option_id, value_id=value_id)

	def complete(self, configuration: Mapping[str, str], total_price: Any) -> None:
		if self.session is None:
			return
		self.session.configuration = dict(configuration)
		self._track(
			"config_completed",
			metadata={
				"total_price": str(total_price),
				"session_duration": self._duration(),
				"total_selections": len(configuration),
			},
		)
		self.session.completion_rate = 100.0
		self.session = None

	def abandon(self, reason: Optional[str] = None) -> None:
		if self.session is None:
			return
		point = self._abandonment_point()
		self.session.abandonment_point = point
		self._track(
			"config_abandoned",
			metadata={
				"reason": reason,
				"abandonment_point": point,
				"session_duration": self._duration(),
				"completion_rate": self.session.completion_rate,
			},
		)
		self.session = None

	def flush(self) -> None:
		if not self._queue:
			return
		batch, self._queue = self._queue, []
		try:
			self.sink(batch)
		except Exception as exc:
			# Keep the events for the next flush.
			logger.warning("Analytics flush failed, %d events re-queued: %s", len(batch), exc)
			self._queue = batch + self._queue

	def stop(self) -> None:
		self.flush()
		self._stopped = True

	def _ensure_running(self) -> None:
		if self._stopped:
			raise RuntimeError("SessionTracker has been stopped")

	def _duration(self) -> float:
		if self.session is None:
			return 0.0
		return (self.clock() - self.session.started_at).total_seconds()

	def _abandonment_point(self) -> str:
		if self.session is None or not self.session.events:
			return "unknown"
		last = self.session.events[-1]
		if last.event_type == "option_selected":
			return f"option_{last.option_id}"
		if last.event_type == "price_viewed":
			return "price_review"
		if last.event_type == "config_started":
			return "initial_view"
		return "unknown"

	def _update_completion_rate(self) -> None:
		session = self.session
		if session is None:
			return
		required = session.required_options
		if not required:
			session.completion_rate = 0.0
			return
		done = sum(1 for option_id in required if session.configuration.get(option_id))
		session.completion_rate = min(100.0, done / len(required) * 100)

	def _track(self, event_type: str, **kwargs: Any) -> None:
		self._ensure_running()
		session = self.session
		if session is None:
			return
		event = AnalyticsEvent(
			event_type=event_type,
			product_id=session.product_id,
			session_id=session.session_id,
			timestamp=self.clock(),
			configuration=dict(session.configuration),
			**kwargs,
		)
		session.events.append(event)
		self._update_completion_rate()
		self._queue.append(event)
		if event_type in CRITICAL_EVENTS or len(self._queue) >= self.batch_size:
			self.flush()
