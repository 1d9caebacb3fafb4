"""Equip/unequip owned badges into wear slots."""

import structlog

from mathquest.models.badge import BadgeCatalog, BadgeSlot
from mathquest.models.progress import ProgressRecord

logger = structlog.get_logger()

BODY_SLOTS: tuple[str, str] = ("body_1", "body_2")
SINGLE_SLOTS: tuple[str, ...] = (BadgeSlot.HEAD.value, BadgeSlot.FACE.value, BadgeSlot.AURA.value)
EQUIP_SLOTS: frozenset[str] = frozenset(SINGLE_SLOTS + BODY_SLOTS)


def equip_badge(progress: ProgressRecord, badge_id: str, catalog: BadgeCatalog) -> ProgressRecord:
    """Toggle ``badge_id`` in its slot and return the next record.

    Single-occupancy slots toggle off when the same badge is equipped
    again and otherwise replace the occupant. Body badges fill the first
    empty body sub-slot, toggle off from whichever sub-slot holds them,
    and replace sub-slot 2 when both are taken. Unowned or unknown badges
    leave the record unchanged.
    """
    badge = catalog.get(badge_id)
    if badge is None or not progress.owns(badge_id):
        logger.debug("equip_ignored", badge_id=badge_id, known=badge is not None)
        return progress

    equipped = dict(progress.equipped_badges)

    if badge.slot == BadgeSlot.BODY:
        first, second = BODY_SLOTS
        if equipped.get(first) == badge_id:
            del equipped[first]
        elif equipped.get(second) == badge_id:
            del equipped[second]
        elif first not in equipped:
            equipped[first] = badge_id
        else:
            equipped[second] = badge_id
    else:
        slot = badge.slot.value
        if equipped.get(slot) == badge_id:
            del equipped[slot]
        else:
            equipped[slot] = badge_id

    return progress.model_copy(update={"equipped_badges": equipped})


def unequip_slot(progress: ProgressRecord, slot: str) -> ProgressRecord:
    """Clear ``slot``; clearing an empty or unknown slot is a no-op."""
    if slot not in progress.equipped_badges:
        return progress
    equipped = dict(progress.equipped_badges)
    del equipped[slot]
    return progress.model_copy(update={"equipped_badges": equipped})
