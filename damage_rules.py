"""
Damage resolution: a drawn hit outcome -> damage dealt and block consumed,
plus the status-effect rolls that ride on a landed hit.
"""

from __future__ import annotations

import random
from typing import Dict, Tuple

from hit_chance import BodyPart, HitType, clamp
from sim_rules import (
    CRIT_EFFECT_BONUS,
    EFFECT_RESISTANCE,
    HALF_HIT_FACTOR,
    MAGICAL_BUDGET_DIVISOR,
    MIN_CRIT_EFF,
)
from stat_model import STATUS_EFFECT_CHANCES, SkillId, Stat


def damage_multiplier(attacker: Stat, hit_type: HitType) -> float:
    """Weapon multiplier applied to physical damage for a given outcome."""
    normal = attacker.get("weapon_dmg") * attacker.get("main_hand_eff")
    if hit_type.is_crit:
        return normal * max(attacker.get("crit_eff"), MIN_CRIT_EFF)
    if hit_type.is_half:
        return normal * HALF_HIT_FACTOR
    return normal


def get_damage(
    attacker: Stat,
    defender: Stat,
    body_part: BodyPart,
    hit_type: HitType,
    block_pool: int,
) -> Tuple[int, int]:
    """
    Return (damage dealt, block consumed) for one resolved attack.

    Block and flat protection form two running budgets shared by every damage
    component of the hit, consumed in component order. Magical components are
    not scaled by the weapon and only see half of each budget.
    """
    if hit_type is HitType.NO_HIT:
        return 0, 0

    components = attacker.get_damage()
    multiplier = damage_multiplier(attacker, hit_type)
    part = defender.part(body_part.stat_field)

    armor_pen = clamp(attacker.get("armor_pen"))
    flat_left = int(part.get("protection") * (1.0 - armor_pen))
    block_supplied = max(int(block_pool), 0) if hit_type.is_blocked else 0
    block_left = block_supplied
    damage_taken = defender.get("damage_taken")

    total = 0
    for damage_type, amount in components:
        if damage_type.is_physical:
            raw = int(amount * multiplier)
            block_available = block_left
            flat_available = flat_left
        else:
            raw = int(amount)
            block_available = block_left // MAGICAL_BUDGET_DIVISOR
            flat_available = flat_left // MAGICAL_BUDGET_DIVISOR

        absorbed = min(raw, block_available)
        block_left = max(0, block_left - raw)

        excess = raw - absorbed
        flat_used = min(excess, flat_available)
        flat_left -= flat_used
        remaining = excess - flat_used

        resisted = remaining * (1.0 - part.resistance(damage_type)) * damage_taken
        total += max(0, int(resisted))

    return total, block_supplied - block_left


def effect_resistance(defender: Stat, effect: SkillId, body_part: BodyPart) -> float:
    """Fortitude plus the resistance that specifically opposes `effect`."""
    resistance = defender.get("fortitude")
    kind = EFFECT_RESISTANCE.get(effect.value)
    if kind == "bleed":
        resistance += defender.part(body_part.stat_field).get("bleed")
    elif kind == "control":
        resistance += defender.get("control_resistance")
    elif kind == "move":
        resistance += defender.get("move_resistance")
    return clamp(resistance)


def effect_chance(attacker: Stat, effect: SkillId, is_crit: bool) -> float:
    chance = attacker.get(STATUS_EFFECT_CHANCES[effect])
    if is_crit:
        weapon_type = attacker.get("weapon_type")
        chance += CRIT_EFFECT_BONUS.get(weapon_type.value, {}).get(effect.value, 0.0)
    return chance


def additional_effect(
    attacker: Stat,
    defender: Stat,
    body_part: BodyPart,
    is_crit: bool,
    rng: random.Random,
) -> Dict[SkillId, bool]:
    """
    Roll every status effect of a landed hit.

    Each effect draws twice: once against the attacker's chance and once
    against what the defender's resistance lets through. Both must succeed.
    """
    triggered: Dict[SkillId, bool] = {}
    for effect in STATUS_EFFECT_CHANCES:
        chance = effect_chance(attacker, effect, is_crit)
        resistance = effect_resistance(defender, effect, body_part)
        chance_roll = rng.random()
        resist_roll = rng.random()
        triggered[effect] = chance_roll < chance and resist_roll < 1.0 - resistance
    return triggered


def residual_damage(stat: Stat) -> int:
    """Damage-over-time the holder of `stat` takes every cycle."""
    flat = stat.get("residual_flat")
    percent = stat.get("residual_percent")
    hp = stat.hp or 0
    return max(0, int(flat + percent * hp))
