"""
Process-wide macro state.

Holds the current MacroEnvironment snapshot and the sector cycle profile
table. Readers take one MacroState and use it for a whole analysis; updates
build a new state and swap it in under a lock, so a state object is never
mutated after publication.
"""
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Any, Mapping, Optional
import logging
import threading

from shared.configs.models import MacroEnvironment, SectorCycleProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MacroState:
    """Consistent pair of macro snapshot and sector table."""
    environment: MacroEnvironment
    sector_profiles: Mapping[str, SectorCycleProfile]
    version: int = 0


class MacroStateStore:
    """Thread-safe holder of the current MacroState."""

    def __init__(
        self,
        environment: Optional[MacroEnvironment] = None,
        sector_profiles: Optional[Mapping[str, SectorCycleProfile]] = None
    ):
        self._lock = threading.Lock()
        self._state = MacroState(
            environment=environment or MacroEnvironment(),
            sector_profiles=MappingProxyType(dict(sector_profiles or {})),
        )

    def snapshot(self) -> MacroState:
        """Return the current state; the returned object never changes."""
        return self._state

    def get_current_macro_environment(self) -> MacroEnvironment:
        return self._state.environment

    def update_macro_environment(
        self,
        environment: Optional[MacroEnvironment] = None,
        **fields: Any
    ) -> MacroEnvironment:
        """
        Replace the macro snapshot.

        Either pass a complete MacroEnvironment or individual fields to change
        on top of the current one. Field changes are validated by building a
        new model; last_updated defaults to today when fields are changed.

        Returns:
            The newly published environment

        Raises:
            pydantic.ValidationError: If a field value is invalid
        """
        with self._lock:
            current = self._state
            if environment is None:
                changes = dict(fields)
                changes.setdefault("last_updated", date.today())
                data = current.environment.model_dump()
                data.update(changes)
                environment = MacroEnvironment(**data)
            elif fields:
                raise ValueError("Pass either an environment or field changes, not both")

            self._state = MacroState(
                environment=environment,
                sector_profiles=current.sector_profiles,
                version=current.version + 1,
            )

        logger.info(
            f"Macro environment updated: phase={environment.phase.value}, "
            f"liquidity={environment.liquidity.value}, rate={environment.fed_funds_rate}"
        )
        return environment

    def set_sector_cycle_profile(self, sector: str, profile: SectorCycleProfile) -> None:
        """Add or replace one sector's cycle profile."""
        if not sector:
            raise ValueError("sector must be a non-empty string")
        with self._lock:
            current = self._state
            profiles = dict(current.sector_profiles)
            profiles[sector] = profile
            self._state = MacroState(
                environment=current.environment,
                sector_profiles=MappingProxyType(profiles),
                version=current.version + 1,
            )
        logger.info(f"Sector cycle profile set for {sector}")
