"""
Hit-outcome distribution: attacker vs defender stats -> six-way Chance.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Tuple

from stat_model import Stat


class HitType(Enum):
    CRIT_HIT = "crit_hit"
    NORMAL_HIT = "normal_hit"
    HALF_HIT = "half_hit"
    BLOCK_CRIT_HIT = "block_crit_hit"
    BLOCK_NORMAL_HIT = "block_normal_hit"
    BLOCK_HALF_HIT = "block_half_hit"
    NO_HIT = "no_hit"

    @property
    def is_crit(self) -> bool:
        return self in (HitType.CRIT_HIT, HitType.BLOCK_CRIT_HIT)

    @property
    def is_half(self) -> bool:
        return self in (HitType.HALF_HIT, HitType.BLOCK_HALF_HIT)

    @property
    def is_blocked(self) -> bool:
        return self in BLOCKED_HITS

    @property
    def triggers_effects(self) -> bool:
        """Crit and normal hits (blocked or not) can apply status effects."""
        return self in EFFECT_HITS


# Draw order of Chance; NO_HIT is the implicit residual outcome.
OUTCOME_ORDER: Tuple[HitType, ...] = (
    HitType.CRIT_HIT,
    HitType.NORMAL_HIT,
    HitType.HALF_HIT,
    HitType.BLOCK_CRIT_HIT,
    HitType.BLOCK_NORMAL_HIT,
    HitType.BLOCK_HALF_HIT,
)
BLOCKED_HITS = frozenset(
    {HitType.BLOCK_CRIT_HIT, HitType.BLOCK_NORMAL_HIT, HitType.BLOCK_HALF_HIT}
)
EFFECT_HITS = frozenset(
    {
        HitType.CRIT_HIT,
        HitType.NORMAL_HIT,
        HitType.BLOCK_CRIT_HIT,
        HitType.BLOCK_NORMAL_HIT,
    }
)


class BodyPart(Enum):
    RIGHT_LEG = "right_leg"
    LEFT_LEG = "left_leg"
    RIGHT_HAND = "right_hand"
    LEFT_HAND = "left_hand"
    TORSO = "torso"
    HEAD = "head"
    NONE = "none"

    @property
    def stat_field(self) -> str:
        """Name of the Stat body-part sub-record covering this location."""
        if self in (BodyPart.RIGHT_HAND, BodyPart.LEFT_HAND):
            return "hands"
        if self in (BodyPart.RIGHT_LEG, BodyPart.LEFT_LEG):
            return "legs"
        if self is BodyPart.HEAD:
            return "head"
        # untargeted hits land on the torso
        return "torso"


TARGETABLE_PARTS: Tuple[BodyPart, ...] = (
    BodyPart.RIGHT_LEG,
    BodyPart.LEFT_LEG,
    BodyPart.RIGHT_HAND,
    BodyPart.LEFT_HAND,
    BodyPart.TORSO,
    BodyPart.HEAD,
)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class Chance:
    """Probabilities of the six hit outcomes; the rest is a miss."""
    crit_hit: float = 0.0
    normal_hit: float = 0.0
    half_hit: float = 0.0
    block_crit_hit: float = 0.0
    block_normal_hit: float = 0.0
    block_half_hit: float = 0.0

    def __iter__(self) -> Iterator[float]:
        return iter(
            (
                self.crit_hit,
                self.normal_hit,
                self.half_hit,
                self.block_crit_hit,
                self.block_normal_hit,
                self.block_half_hit,
            )
        )

    @property
    def total(self) -> float:
        return sum(self)

    def probability(self, hit_type: HitType) -> float:
        if hit_type is HitType.NO_HIT:
            return max(0.0, 1.0 - self.total)
        return getattr(self, hit_type.value)

    def draw(self, rng: random.Random, scale: Optional[float] = None) -> HitType:
        """
        Draw one outcome with a single uniform roll.

        `scale` multiplies every probability (counter-attacks); None means 1.0.
        """
        factor = 1.0 if scale is None else scale
        roll = rng.random()
        cumulative = 0.0
        for hit_type, probability in zip(OUTCOME_ORDER, self):
            cumulative += probability
            if cumulative * factor > roll:
                return hit_type
        return HitType.NO_HIT


NO_CHANCE = Chance()


@dataclass(frozen=True)
class Hit:
    """An attack ready to be drawn: outcome distribution and target location."""
    chance: Chance
    body_part: BodyPart

    def draw(self, rng: random.Random, scale: Optional[float] = None) -> HitType:
        return self.chance.draw(rng, scale)


def compute_chance(attacker: Stat, defender: Stat) -> Chance:
    """Six-way outcome distribution of `attacker` swinging at `defender`."""
    if not attacker.get("can_act"):
        return NO_CHANCE

    accuracy = attacker.get("accuracy")
    dodge = defender.get("dodge")
    if dodge < 0.0:
        # negative dodge is a bonus to the attacker
        accuracy = min(accuracy - dodge, 1.0)
        dodge = 0.0
    elif accuracy > 1.0:
        dodge -= accuracy - 1.0
        accuracy = 1.0
    dodge = clamp(dodge)
    accuracy = max(accuracy, 0.0)

    fumble = clamp(attacker.get("fumble"))
    crit_chance = clamp(attacker.get("crit_chance"))
    block = clamp(defender.get("block"))

    landed = accuracy * (1.0 - fumble) * (1.0 - dodge)
    half_hit = accuracy * (1.0 - fumble) * dodge + accuracy * fumble * (1.0 - dodge)
    normal_hit = landed * (1.0 - crit_chance)
    crit_hit = landed * crit_chance

    return Chance(
        crit_hit=crit_hit * (1.0 - block),
        normal_hit=normal_hit * (1.0 - block),
        half_hit=half_hit * (1.0 - block),
        block_crit_hit=crit_hit * block,
        block_normal_hit=normal_hit * block,
        block_half_hit=half_hit * block,
    )


def random_body_part(rng: random.Random) -> BodyPart:
    return rng.choice(TARGETABLE_PARTS)


def build_hit(attacker: Stat, defender: Stat, rng: random.Random) -> Hit:
    """Distribution plus an independently drawn target location."""
    return Hit(chance=compute_chance(attacker, defender), body_part=random_body_part(rng))
