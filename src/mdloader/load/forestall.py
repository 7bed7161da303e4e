"""
Conflict resolution ("forestall").

Before any unit that may already exist remotely is loaded, the resolver
decides whether to load it, skip it, or delete the existing unit and load
the new one. The decision never raises for the conflict itself.

Matrix::

    no existing unit        -> load
    conserve                -> skip
    overwrite               -> delete existing, load
    neither                 -> ask the decision provider (default: skip)
    conserve and overwrite  -> rejected when the resolver is built
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import typer

from mdloader.exceptions import ValidationError
from mdloader.load.types import Conflict, Decision, UnitIdentity
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.forestall")


class DecisionProvider(Protocol):
    """Answers conflicts when neither conserve nor overwrite was requested."""

    async def decide(self, conflict: Conflict) -> Decision: ...


def _preview(value: Any) -> str:
    try:
        text = json.dumps(value, indent=4, default=str)
    except (TypeError, ValueError):
        text = repr(value)
    return text if len(text) <= 2000 else text[:2000] + "\n..."


class InteractiveDecisionProvider:
    """Asks on the terminal. 'Y' overwrites, anything else (or no input) skips."""

    def __init__(self, prompt: Callable[..., str] = typer.prompt) -> None:
        self._prompt = prompt

    async def decide(self, conflict: Conflict) -> Decision:
        lines = [f"{conflict.unit} already exists."]
        if conflict.existing is not None and conflict.new is not None:
            lines.append(f"Previous value: {_preview(conflict.existing)}")
            lines.append(f"New value: {_preview(conflict.new)}")
        lines.append("Y - Overwrite previous data with new data")
        lines.append("* - Conserve previous data and discard new data")
        answer = await asyncio.to_thread(self._prompt, "\n".join(lines), default="", show_default=False)
        decision = Decision.OVERWRITE if str(answer).strip().upper() == "Y" else Decision.SKIP
        if decision == Decision.OVERWRITE:
            logger.warning(f"Previous {conflict.unit} will be overwritten by the new data")
        else:
            logger.warning(f"Previous {conflict.unit} is conserved and the new data discarded")
        return decision


class StaticDecisionProvider:
    """Headless provider returning the same decision for every conflict."""

    def __init__(self, decision: Decision = Decision.SKIP) -> None:
        self.decision = decision
        self.conflicts: list[Conflict] = []

    async def decide(self, conflict: Conflict) -> Decision:
        self.conflicts.append(conflict)
        return self.decision


class ConflictResolver:
    """
    Gates the load of every unit against the remote state.

    Args:
        conserve: Always keep existing units
        overwrite: Always replace existing units
        provider: Asked when neither flag is set (default: interactive)
    """

    def __init__(
        self, *, conserve: bool = False, overwrite: bool = False, provider: DecisionProvider | None = None
    ) -> None:
        if conserve and overwrite:
            raise ValidationError("'conserve' and 'overwrite' are mutually exclusive")
        self.conserve = conserve
        self.overwrite = overwrite
        self.provider = provider or InteractiveDecisionProvider()

    async def _ask(self, conflict: Conflict) -> Decision:
        if self.overwrite:
            return Decision.OVERWRITE
        return await self.provider.decide(conflict)

    async def decide(
        self,
        unit: UnitIdentity,
        existing: Any,
        delete: Callable[[], Awaitable[Any]] | None = None,
        *,
        new: Any = None,
        identical: bool = False,
    ) -> bool:
        """
        Decide whether unit should be loaded.

        Args:
            unit: Identity of the unit about to be loaded
            existing: The existing remote unit, None when there is none
            delete: Removes the existing unit; awaited before returning True
            new: The new value, shown to interactive providers
            identical: The new unit equals the existing one

        Returns:
            True if the caller must load the unit
        """
        if existing is None:
            return True
        if self.conserve:
            logger.info(f"Conserving existing {unit}")
            return False
        if identical:
            logger.info(f"Existing {unit} is identical, skipping")
            return False
        decision = await self._ask(Conflict(unit=unit, existing=existing, new=new))
        if decision == Decision.SKIP:
            logger.info(f"Skipping existing {unit}")
            return False
        if delete is not None:
            await delete()
        logger.info(f"Replacing existing {unit}")
        return True

    async def merge_metadata(self, previous: dict[str, Any], new: dict[str, Any], md: int | None = None) -> bool:
        """
        Merge new metadata into previous, in place, key by key.

        Missing keys are added, equal values ignored and conflicting values
        resolved with the same conserve / overwrite / ask policy. Keys only
        present in previous are kept.

        Returns:
            True if previous changed
        """
        changed = False
        for key, new_value in new.items():
            if key not in previous:
                previous[key] = new_value
                changed = True
                continue
            previous_value = previous[key]
            if previous_value == new_value or self.conserve:
                continue
            conflict = Conflict(unit=UnitIdentity("metadata field", key, md), existing=previous_value, new=new_value)
            if await self._ask(conflict) == Decision.OVERWRITE:
                previous[key] = new_value
                changed = True
        return changed
