"""
First-run onboarding state.

The onboarding screens are shown until the user completes them, and again
whenever the onboarding content version is bumped past the version the user
completed.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .persistence import KeyValueSlot
from .store import Store, StoreOptions

ONBOARDING_STORE_NAME = "onboarding"
ONBOARDING_STATE_VERSION = 1
CURRENT_ONBOARDING_VERSION = 1


@dataclass(frozen=True)
class OnboardingState:
    has_completed_onboarding: bool = False
    onboarding_version: int = 0
    completed_at: Optional[str] = None  # ISO-8601


class OnboardingStore(Store[OnboardingState]):
    def __init__(
        self,
        slot: Optional[KeyValueSlot] = None,
        persistence_key: Optional[str] = None,
        current_version: int = CURRENT_ONBOARDING_VERSION,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        options = StoreOptions(
            persistence_key=persistence_key if slot is not None else None,
            version=ONBOARDING_STATE_VERSION,
        )
        self.current_version = current_version
        self._clock = clock
        super().__init__(OnboardingState(), options, slot)

    def complete_onboarding(self) -> None:
        self.set(
            {
                "has_completed_onboarding": True,
                "onboarding_version": self.current_version,
                "completed_at": self._clock().isoformat(),
            }
        )

    def reset_onboarding(self) -> None:
        self.reset()

    def should_show_onboarding(self) -> bool:
        state = self.get()
        return (
            not state.has_completed_onboarding
            or state.onboarding_version < self.current_version
        )
