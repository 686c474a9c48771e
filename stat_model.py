"""
Attribute model: optional-field stat records and their additive merge.

Every numeric field may be absent (None). Absent fields are merged as
"nothing to add" and only replaced by a default when a value is read through
`Stat.get` / `BodyPartStat.get`, so the defaults live in one place
(sim_rules) instead of leaking into every merge.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sim_rules import (
    DEFAULT_ACCURACY,
    DEFAULT_ARMOR_PEN,
    DEFAULT_BLOCK,
    DEFAULT_BLOCK_POWER,
    DEFAULT_BLOCK_RECOVERY,
    DEFAULT_CAN_ACT,
    DEFAULT_COUNTER,
    DEFAULT_CRIT_CHANCE,
    DEFAULT_CRIT_EFF,
    DEFAULT_DAMAGE_TAKEN,
    DEFAULT_DODGE,
    DEFAULT_EFFECT_CHANCE,
    DEFAULT_FUMBLE,
    DEFAULT_MAIN_HAND_EFF,
    DEFAULT_PROTECTION,
    DEFAULT_RESIDUAL_FLAT,
    DEFAULT_RESIDUAL_PERCENT,
    DEFAULT_RESISTANCE,
    DEFAULT_WEAPON_DMG,
)


class SimulationError(Exception):
    """Base class for recoverable simulation failures."""


class IncompleteStatError(SimulationError):
    """A required attribute is missing, so an attack or trial cannot run."""

    def __init__(self, field_name: str):
        super().__init__(f"incomplete attribute set: missing '{field_name}'")
        self.field_name = field_name

    def __reduce__(self):
        return type(self), (self.field_name,)


class DataError(SimulationError):
    """External definitions reference something that does not exist or is malformed."""


class DamageType(str, Enum):
    PHYSICAL = "physical"
    SLASH = "slash"
    PIERCE = "pierce"
    CRUSH = "crush"
    REND = "rend"
    MAGICAL = "magical"
    POISON = "poison"
    CAUSTIC = "caustic"

    @property
    def is_physical(self) -> bool:
        return self in PHYSICAL_DAMAGE_TYPES


PHYSICAL_DAMAGE_TYPES = frozenset(
    {
        DamageType.PHYSICAL,
        DamageType.SLASH,
        DamageType.PIERCE,
        DamageType.CRUSH,
        DamageType.REND,
    }
)


class WeaponType(str, Enum):
    NONE = "none"
    BLADE = "blade"
    POINT = "point"
    BLUNT = "blunt"


class SkillId(str, Enum):
    BLEEDING = "bleeding"
    DAZE = "daze"
    STUN = "stun"
    KNOCKBACK = "knockback"
    IMMOBILIZATION = "immobilization"
    STAGGER = "stagger"
    WARCRY = "warcry"
    CONFUSION = "confusion"
    OFFENSIVE_STANCE = "offensive_stance"
    DEFENSIVE_STANCE = "defensive_stance"
    DISENGAGE = "disengage"
    INITIATIVE_UP = "initiative_up"
    INITIATIVE_DOWN = "initiative_down"


# Effects an attack can inflict, with the attacker stat holding the base chance.
STATUS_EFFECT_CHANCES = {
    SkillId.BLEEDING: "bleed_chance",
    SkillId.DAZE: "daze_chance",
    SkillId.STUN: "stun_chance",
    SkillId.KNOCKBACK: "knockback_chance",
    SkillId.IMMOBILIZATION: "immobilization_chance",
    SkillId.STAGGER: "stagger_chance",
}

DamageComponent = Tuple[DamageType, int]


def add_optional(left, right):
    """Merge two optional values: sum when both are present, else whichever is."""
    if left is None:
        return right
    if right is None:
        return left
    return left + right


def override_optional(left, right):
    """Most recently applied value wins; absent never overrides."""
    return left if right is None else right


# ============================================================================
# BODY PARTS
# ============================================================================

BODY_PART_DEFAULTS: Dict[str, Any] = {
    "protection": DEFAULT_PROTECTION,
    "physical": DEFAULT_RESISTANCE,
    "slash": DEFAULT_RESISTANCE,
    "pierce": DEFAULT_RESISTANCE,
    "crush": DEFAULT_RESISTANCE,
    "rend": DEFAULT_RESISTANCE,
    "poison": DEFAULT_RESISTANCE,
    "caustic": DEFAULT_RESISTANCE,
    "bleed": DEFAULT_RESISTANCE,
}


@dataclass(frozen=True)
class BodyPartStat:
    """Protection and resistance fractions of one body location."""
    protection: Optional[int] = None
    physical: Optional[float] = None
    slash: Optional[float] = None
    pierce: Optional[float] = None
    crush: Optional[float] = None
    rend: Optional[float] = None
    poison: Optional[float] = None
    caustic: Optional[float] = None
    bleed: Optional[float] = None

    def __add__(self, other: "BodyPartStat") -> "BodyPartStat":
        if not isinstance(other, BodyPartStat):
            return NotImplemented
        return BodyPartStat(
            **{
                f.name: add_optional(getattr(self, f.name), getattr(other, f.name))
                for f in fields(self)
            }
        )

    def get(self, name: str):
        value = getattr(self, name)
        return BODY_PART_DEFAULTS[name] if value is None else value

    def resistance(self, damage_type: DamageType) -> float:
        """Resistance fraction against a damage type (magical has none)."""
        if damage_type is DamageType.MAGICAL:
            return DEFAULT_RESISTANCE
        return float(self.get(damage_type.value))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "BodyPartStat":
        unknown = set(raw) - set(BODY_PART_DEFAULTS)
        if unknown:
            raise ValueError(f"unknown body part fields: {sorted(unknown)}")
        values = {}
        for name, value in raw.items():
            if value is None:
                continue
            values[name] = int(value) if name == "protection" else float(value)
        return cls(**values)


EMPTY_BODY_PART = BodyPartStat()


# ============================================================================
# STAT
# ============================================================================

STAT_DEFAULTS: Dict[str, Any] = {
    "weapon_dmg": DEFAULT_WEAPON_DMG,
    "main_hand_eff": DEFAULT_MAIN_HAND_EFF,
    "armor_pen": DEFAULT_ARMOR_PEN,
    "accuracy": DEFAULT_ACCURACY,
    "crit_chance": DEFAULT_CRIT_CHANCE,
    "crit_eff": DEFAULT_CRIT_EFF,
    "counter": DEFAULT_COUNTER,
    "fumble": DEFAULT_FUMBLE,
    "bleed_chance": DEFAULT_EFFECT_CHANCE,
    "daze_chance": DEFAULT_EFFECT_CHANCE,
    "stun_chance": DEFAULT_EFFECT_CHANCE,
    "knockback_chance": DEFAULT_EFFECT_CHANCE,
    "immobilization_chance": DEFAULT_EFFECT_CHANCE,
    "stagger_chance": DEFAULT_EFFECT_CHANCE,
    "block": DEFAULT_BLOCK,
    "block_power": DEFAULT_BLOCK_POWER,
    "block_recovery": DEFAULT_BLOCK_RECOVERY,
    "dodge": DEFAULT_DODGE,
    "fortitude": DEFAULT_RESISTANCE,
    "control_resistance": DEFAULT_RESISTANCE,
    "move_resistance": DEFAULT_RESISTANCE,
    "damage_taken": DEFAULT_DAMAGE_TAKEN,
    "residual_flat": DEFAULT_RESIDUAL_FLAT,
    "residual_percent": DEFAULT_RESIDUAL_PERCENT,
    "can_act": DEFAULT_CAN_ACT,
    "weapon_type": WeaponType.NONE,
}

INT_FIELDS = {"hp", "block_power", "residual_flat"}
BODY_PART_FIELDS = ("hands", "legs", "torso", "head")
# Replaced by the most recently applied operand instead of summed.
OVERRIDE_FIELDS = {"damage", "weapon_type", "can_act"}


@dataclass(frozen=True)
class Stat:
    """A combatant attribute set or a skill's attribute modifier."""
    hp: Optional[int] = None
    damage: Optional[Tuple[DamageComponent, ...]] = None
    weapon_dmg: Optional[float] = None
    main_hand_eff: Optional[float] = None
    armor_pen: Optional[float] = None
    accuracy: Optional[float] = None
    crit_chance: Optional[float] = None
    crit_eff: Optional[float] = None
    counter: Optional[float] = None
    fumble: Optional[float] = None
    bleed_chance: Optional[float] = None
    daze_chance: Optional[float] = None
    stun_chance: Optional[float] = None
    knockback_chance: Optional[float] = None
    immobilization_chance: Optional[float] = None
    stagger_chance: Optional[float] = None
    block: Optional[float] = None
    block_power: Optional[int] = None
    block_recovery: Optional[float] = None
    dodge: Optional[float] = None
    fortitude: Optional[float] = None
    control_resistance: Optional[float] = None
    move_resistance: Optional[float] = None
    damage_taken: Optional[float] = None
    hands: Optional[BodyPartStat] = None
    legs: Optional[BodyPartStat] = None
    torso: Optional[BodyPartStat] = None
    head: Optional[BodyPartStat] = None
    residual_flat: Optional[int] = None
    residual_percent: Optional[float] = None
    can_act: Optional[bool] = None
    weapon_type: Optional[WeaponType] = None

    def __add__(self, other: "Stat") -> "Stat":
        if not isinstance(other, Stat):
            return NotImplemented
        merged = {}
        for f in fields(self):
            left = getattr(self, f.name)
            right = getattr(other, f.name)
            if f.name in OVERRIDE_FIELDS:
                merged[f.name] = override_optional(left, right)
            else:
                merged[f.name] = add_optional(left, right)
        return Stat(**merged)

    def get(self, name: str):
        """Value of an optional field, or its default when absent."""
        value = getattr(self, name)
        if value is None:
            return STAT_DEFAULTS[name]
        return value

    def require(self, name: str):
        """Value of a field the caller cannot work without."""
        value = getattr(self, name)
        if value is None:
            raise IncompleteStatError(name)
        return value

    def get_hp(self) -> int:
        return self.require("hp")

    def get_damage(self) -> Tuple[DamageComponent, ...]:
        return self.require("damage")

    def part(self, name: str) -> BodyPartStat:
        value = getattr(self, name)
        return EMPTY_BODY_PART if value is None else value

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Stat":
        """Build a Stat from a plain mapping (as loaded from YAML)."""
        known = {f.name for f in fields(cls)}
        unknown = set(raw) - known
        if unknown:
            raise ValueError(f"unknown stat fields: {sorted(unknown)}")

        values: Dict[str, Any] = {}
        for name, value in raw.items():
            if value is None:
                continue
            if name == "damage":
                values[name] = parse_damage(value)
            elif name in BODY_PART_FIELDS:
                values[name] = BodyPartStat.from_dict(value)
            elif name == "weapon_type":
                values[name] = WeaponType(str(value).lower())
            elif name == "can_act":
                values[name] = bool(value)
            elif name in INT_FIELDS:
                values[name] = int(value)
            else:
                values[name] = float(value)
        return cls(**values)


def parse_damage(raw: Any) -> Tuple[DamageComponent, ...]:
    """Accept `{type: amount}`, `[[type, amount], ...]` or `[{type, amount}]`."""
    components: List[DamageComponent] = []
    if isinstance(raw, Mapping):
        items = list(raw.items())
    else:
        items = []
        for entry in raw:
            if isinstance(entry, Mapping):
                items.append((entry["type"], entry["amount"]))
            else:
                damage_type, amount = entry
                items.append((damage_type, amount))
    for damage_type, amount in items:
        components.append((DamageType(str(damage_type).lower()), int(amount)))
    return tuple(components)
