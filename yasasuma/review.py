"""
Review prompt policy.

Decides whether to ask the platform for a store review after a milestone
(third event / contact / destination added, or a purchase). All decisions
take ``now`` explicitly so date boundaries can be tested deterministically.

Rules:
- never when the user disabled prompts
- at least 3 days since first launch and at least 3 launches
- at most 4 prompts per calendar year (count resets when the year changes)
- at least 30 days between prompts
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Protocol

from yasasuma import config
from yasasuma.models import ReviewPromptState
from yasasuma.storage import KeyValueStore

logger = logging.getLogger(__name__)

STATE_KEY = config.storage_key("review")


class ReviewTrigger(str, Enum):
    ADDED_EVENTS = "added_events"
    ADDED_FAVORITE_CONTACTS = "added_favorite_contacts"
    ADDED_DESTINATIONS = "added_destinations"
    PURCHASED_PRO = "purchased_pro"


class Reviewer(Protocol):
    def request_review(self) -> bool:
        """Fire the platform prompt; False when no foreground context exists."""
        ...


def _local(moment: datetime) -> datetime:
    """Naive local time; aware datetimes are converted first."""
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def count_this_year(now: datetime, state: ReviewPromptState) -> int:
    if state.last_prompt_year == 0 or _local(now).year != state.last_prompt_year:
        return 0
    return state.prompt_count_this_year


def should_prompt(now: datetime, state: ReviewPromptState) -> bool:
    now = _local(now)
    if state.prompt_disabled:
        return False
    if state.first_launch_date is None:
        return False
    if now - _local(state.first_launch_date) < timedelta(days=config.REVIEW_MIN_DAYS_SINCE_FIRST_LAUNCH):
        return False
    if state.launch_count < config.REVIEW_MIN_LAUNCH_COUNT:
        return False
    if count_this_year(now, state) >= config.REVIEW_MAX_PROMPTS_PER_YEAR:
        return False
    if state.last_prompt_date is not None and (
        now - _local(state.last_prompt_date) < timedelta(days=config.REVIEW_MIN_DAYS_BETWEEN_PROMPTS)
    ):
        return False
    return True


def record_prompt(now: datetime, state: ReviewPromptState) -> ReviewPromptState:
    now = _local(now)
    return state.evolve(
        last_prompt_date=now,
        last_prompt_year=now.year,
        prompt_count_this_year=count_this_year(now, state) + 1,
    )


class ReviewPromptManager:
    """Owns the persisted counters and calls the reviewer when allowed."""

    def __init__(
        self,
        *,
        storage: KeyValueStore,
        reviewer: Reviewer,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._storage = storage
        self._reviewer = reviewer
        self._clock = clock or datetime.now
        raw = storage.get(STATE_KEY)
        self._state = ReviewPromptState.from_dict(raw) if isinstance(raw, dict) else ReviewPromptState()
        if self._state.first_launch_date is None:
            self._save(self._state.evolve(first_launch_date=self._clock()))

    @property
    def state(self) -> ReviewPromptState:
        return self._state

    def notify_app_launched(self, now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        self._save(self._state.evolve(
            launch_count=self._state.launch_count + 1,
            first_launch_date=self._state.first_launch_date or now,
        ))

    def maybe_request_review(self, trigger: ReviewTrigger, now: Optional[datetime] = None) -> bool:
        """Prompt if the policy allows; returns True when a prompt was shown."""
        now = now or self._clock()
        if not should_prompt(now, self._state):
            return False

        if not self._reviewer.request_review():
            logger.debug("No foreground context for review prompt", extra={"trigger": trigger.value})
            return False

        self._save(record_prompt(now, self._state))
        logger.info("Review prompt requested", extra={
            "trigger": trigger.value,
            "prompt_count_this_year": self._state.prompt_count_this_year,
        })
        return True

    def disable(self) -> None:
        self._save(self._state.evolve(prompt_disabled=True))

    def _save(self, state: ReviewPromptState) -> None:
        self._state = state
        self._storage.set(STATE_KEY, state.to_dict())
