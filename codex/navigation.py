"""
codex/navigation.py -- Map a clicked reference to a destination view.

Resolution is pure: a :class:`~codex.models.NavigationCommand` goes in, a
:class:`~codex.models.NavigationTarget` (route + payload) or ``None`` comes
out.  Dispatching hands the target to a host callback; the dispatcher itself
performs no I/O.

Equipment has no page of its own, so an equipment reference opens the
owning character instead (``secondary_owner_id``).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from codex.models import EntityCategory, NavigationCommand, NavigationTarget

logger = logging.getLogger(__name__)

ROUTE_TEMPLATES: dict[EntityCategory, str] = {
    EntityCategory.CHARACTER: "/campaigns/{campaign_id}/characters",
    EntityCategory.LOCATION: "/campaigns/{campaign_id}/locations",
    EntityCategory.FACTION: "/campaigns/{campaign_id}/factions",
    EntityCategory.WORLD_INFO: "/campaigns/{campaign_id}/world-info",
    EntityCategory.QUEST: "/campaigns/{campaign_id}/quests",
    EntityCategory.EQUIPMENT: "/campaigns/{campaign_id}/characters",
}

# Which entity type the destination view opens for each category
_DESTINATION_TYPES: dict[EntityCategory, EntityCategory] = {
    EntityCategory.EQUIPMENT: EntityCategory.CHARACTER,
}


def _category(value: str) -> EntityCategory | None:
    try:
        return EntityCategory(value)
    except ValueError:
        return None


class NavigationDispatcher:
    """Resolve reference clicks into routes and hand them to the host.

    Parameters
    ----------
    campaign_id : str
        Campaign the routes are built for.
    on_navigate : Callable[[NavigationTarget], None] | None
        Host callback performing the actual route change.
    """

    def __init__(
        self,
        campaign_id: str,
        on_navigate: Callable[[NavigationTarget], None] | None = None,
    ):
        self.campaign_id = str(campaign_id)
        self._on_navigate = on_navigate

    def resolve(self, command: NavigationCommand) -> Optional[NavigationTarget]:
        """Return the target for *command*, or ``None`` if it cannot be opened."""
        category = _category(command.category)
        if category is None:
            logger.debug("Ignoring click on unknown reference type %r", command.category)
            return None

        if category is EntityCategory.EQUIPMENT:
            target_id = command.secondary_owner_id
            if not target_id:
                logger.debug("Equipment reference %s has no owner; not navigating", command.id)
                return None
        else:
            target_id = command.id

        route = ROUTE_TEMPLATES[category].format(campaign_id=self.campaign_id)
        payload = {
            "openEntityId": target_id,
            "entityType": category.value,
            "secondaryOwnerId": command.secondary_owner_id,
        }
        return NavigationTarget(route=route, payload=payload)

    def dispatch(self, command: NavigationCommand) -> Optional[NavigationTarget]:
        """Resolve *command* and pass the target to the host callback."""
        target = self.resolve(command)
        if target is not None and self._on_navigate is not None:
            self._on_navigate(target)
        return target


def accepts(view_category: EntityCategory, payload: Mapping[str, Any] | None) -> bool:
    """Return ``True`` if a view showing *view_category* should honour *payload*.

    Equipment payloads are honoured by the character view, since that is
    where their target lives.
    """
    if not payload or not payload.get("openEntityId"):
        return False
    category = _category(str(payload.get("entityType", "")))
    if category is None:
        return False
    return _DESTINATION_TYPES.get(category, category) is view_category
