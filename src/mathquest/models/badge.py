"""Collectible badge catalog models."""

from collections.abc import Iterable, Iterator
from enum import StrEnum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict


class BadgeSlot(StrEnum):
    """Where a badge is worn."""

    HEAD = "head"
    FACE = "face"
    BODY = "body"
    AURA = "aura"


class BadgeRarity(StrEnum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class StuffyBadge(BaseModel):
    """A catalog entry. The engine only tracks ownership by ``id``."""

    model_config = ConfigDict(frozen=True)

    id: str
    set_id: str
    name: str
    emoji: str = ""
    slot: BadgeSlot
    rarity: BadgeRarity = BadgeRarity.COMMON
    unlock_description: str = ""


class BadgeCatalog:
    """Read-only, ordered collection of badges indexed by id."""

    def __init__(self, badges: Iterable[StuffyBadge]):
        self._badges: dict[str, StuffyBadge] = {}
        for badge in badges:
            if badge.id in self._badges:
                raise ValueError(f"Duplicate badge id in catalog: {badge.id}")
            self._badges[badge.id] = badge

    def __len__(self) -> int:
        return len(self._badges)

    def __iter__(self) -> Iterator[StuffyBadge]:
        return iter(self._badges.values())

    def __contains__(self, badge_id: object) -> bool:
        return badge_id in self._badges

    def get(self, badge_id: str) -> StuffyBadge | None:
        return self._badges.get(badge_id)

    @property
    def ids(self) -> list[str]:
        return list(self._badges)

    def unowned(self, owned: Iterable[str]) -> list[StuffyBadge]:
        """Catalog badges not in ``owned``, in catalog order."""
        owned_ids = set(owned)
        return [b for b in self._badges.values() if b.id not in owned_ids]

    def in_set(self, set_id: str) -> list[StuffyBadge]:
        return [b for b in self._badges.values() if b.set_id == set_id]


def _badge(
    badge_id: str,
    set_id: str,
    name: str,
    emoji: str,
    slot: BadgeSlot,
    rarity: BadgeRarity,
    unlock_description: str,
) -> StuffyBadge:
    return StuffyBadge(
        id=badge_id,
        set_id=set_id,
        name=name,
        emoji=emoji,
        slot=slot,
        rarity=rarity,
        unlock_description=unlock_description,
    )


STUFFY_BADGES: list[StuffyBadge] = [
    # Spooky Study
    _badge("milk_teeth_medal", "spooky_study", "Milk Teeth Medal", "🦷",
           BadgeSlot.BODY, BadgeRarity.COMMON, "Finish one of your first five rounds."),
    _badge("brain_melt_marshmallow_lv1", "spooky_study", "Brain Melt Marshmallow", "🍡",
           BadgeSlot.BODY, BadgeRarity.COMMON, "Practice for at least 5 minutes in one round."),
    _badge("night_owl_crown", "spooky_study", "Night Owl Crown", "👑",
           BadgeSlot.HEAD, BadgeRarity.RARE, "Finish a round after 9pm or before 5am."),
    _badge("chaos_eyes", "spooky_study", "Chaos Eyes", "👀",
           BadgeSlot.FACE, BadgeRarity.COMMON, "Make a few mistakes but still score 60% or more."),
    _badge("oopsie_bandage", "spooky_study", "Oopsie Bandage", "🩹",
           BadgeSlot.BODY, BadgeRarity.RARE, "Bounce back from a tough round with a big improvement."),
    _badge("slice_and_dice_halo", "spooky_study", "Slice & Dice Halo", "😇",
           BadgeSlot.HEAD, BadgeRarity.EPIC, "Score 90% on a fractions round of 5+ questions."),
    _badge("shadow_study_buddy", "spooky_study", "Shadow Study Buddy", "👻",
           BadgeSlot.AURA, BadgeRarity.EPIC, "Practice 7 days in a row."),
    # Galaxy Lab
    _badge("starlight_goggles", "galaxy_lab", "Starlight Goggles", "🥽",
           BadgeSlot.FACE, BadgeRarity.RARE, "Score 90% on a round of 5+ questions."),
    _badge("orbiting_notebook", "galaxy_lab", "Orbiting Notebook", "📓",
           BadgeSlot.BODY, BadgeRarity.RARE, "Complete 10 rounds."),
    _badge("gravity_boots", "galaxy_lab", "Gravity Boots", "🥾",
           BadgeSlot.BODY, BadgeRarity.RARE, "Practice for at least 10 minutes in one round."),
    _badge("quantum_pocket_watch", "galaxy_lab", "Quantum Pocket Watch", "⌚",
           BadgeSlot.BODY, BadgeRarity.EPIC, "Answer in 4 seconds or less on average with 90% accuracy."),
    _badge("nebula_coat", "galaxy_lab", "Nebula Coat", "🧥",
           BadgeSlot.BODY, BadgeRarity.EPIC, "Solve 50 problems in one category."),
    _badge("black_hole_backpack", "galaxy_lab", "Black Hole Backpack", "🎒",
           BadgeSlot.BODY, BadgeRarity.LEGENDARY, "Jump from 60% or lower to 90%+ after 8 rounds."),
    _badge("comet_tail_aura", "galaxy_lab", "Comet Tail Aura", "☄️",
           BadgeSlot.AURA, BadgeRarity.LEGENDARY, "Practice 14 days in a row."),
    _badge("alien_theorem_hat", "galaxy_lab", "Alien Theorem Hat", "🛸",
           BadgeSlot.HEAD, BadgeRarity.LEGENDARY, "Score 95% on a round of 8+ questions."),
    # Classic stuffies, only awarded as round bonuses
    _badge("teddy_hugs", "classic_stuffies", "Teddy Hugs", "🧸",
           BadgeSlot.BODY, BadgeRarity.COMMON, "Bonus reward for finishing a round."),
    _badge("pinky_bunny", "classic_stuffies", "Pinky Bunny", "🐰",
           BadgeSlot.BODY, BadgeRarity.COMMON, "Bonus reward for finishing a round."),
    _badge("calico_kitty", "classic_stuffies", "Calico Kitty", "🐱",
           BadgeSlot.BODY, BadgeRarity.COMMON, "Bonus reward for finishing a round."),
    _badge("red_foxie", "classic_stuffies", "Red Foxie", "🦊",
           BadgeSlot.BODY, BadgeRarity.RARE, "Bonus reward for finishing a round."),
    _badge("magic_uni", "classic_stuffies", "Magic Uni", "🦄",
           BadgeSlot.AURA, BadgeRarity.EPIC, "Bonus reward for finishing a round."),
]


def default_catalog() -> BadgeCatalog:
    return BadgeCatalog(STUFFY_BADGES)


def load_badge_catalog(path: Path) -> BadgeCatalog:
    """Load a badge catalog from a YAML file with a top-level ``badges`` list."""
    if not path.exists():
        raise FileNotFoundError(f"Badge catalog not found: {path}")
    with open(path, encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    return BadgeCatalog(StuffyBadge(**entry) for entry in data.get('badges', []))
