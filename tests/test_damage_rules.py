import random

import pytest

from damage_rules import (
    additional_effect,
    damage_multiplier,
    effect_chance,
    effect_resistance,
    get_damage,
    residual_damage,
)
from hit_chance import BodyPart, HitType
from stat_model import BodyPartStat, DamageType, IncompleteStatError, SkillId, Stat, WeaponType

PHYS_10 = ((DamageType.PHYSICAL, 10),)


def hitter(damage=PHYS_10, **kwargs):
    kwargs.setdefault("weapon_dmg", 1.0)
    kwargs.setdefault("main_hand_eff", 1.0)
    kwargs.setdefault("crit_eff", 1.0)
    return Stat(hp=100, damage=damage, **kwargs)


def target(**kwargs):
    return Stat(hp=100, damage=PHYS_10, **kwargs)


def test_no_hit_deals_nothing():
    assert get_damage(hitter(), target(), BodyPart.TORSO, HitType.NO_HIT, 10) == (0, 0)


def test_normal_half_and_crit_multipliers():
    assert get_damage(hitter(), target(), BodyPart.TORSO, HitType.NORMAL_HIT, 0) == (10, 0)
    assert get_damage(hitter(), target(), BodyPart.TORSO, HitType.HALF_HIT, 0) == (5, 0)
    assert get_damage(hitter(crit_eff=2.0), target(), BodyPart.TORSO, HitType.CRIT_HIT, 0) == (20, 0)


def test_crit_efficiency_below_one_is_ignored():
    assert damage_multiplier(hitter(crit_eff=0.5), HitType.CRIT_HIT) == pytest.approx(1.0)
    assert damage_multiplier(hitter(crit_eff=0.5), HitType.BLOCK_CRIT_HIT) == pytest.approx(1.0)


def test_weapon_multipliers_scale_physical_damage():
    attacker = hitter(weapon_dmg=1.5, main_hand_eff=2.0)
    assert get_damage(attacker, target(), BodyPart.HEAD, HitType.NORMAL_HIT, 0) == (30, 0)
    assert get_damage(attacker, target(), BodyPart.HEAD, HitType.BLOCK_HALF_HIT, 0) == (15, 0)


def test_blocked_hit_is_limited_by_block_pool():
    damage, consumed = get_damage(hitter(), target(), BodyPart.TORSO, HitType.BLOCK_NORMAL_HIT, 5)
    assert damage == 5
    assert consumed == 5


def test_block_pool_larger_than_hit_is_only_partly_used():
    damage, consumed = get_damage(hitter(), target(), BodyPart.TORSO, HitType.BLOCK_NORMAL_HIT, 25)
    assert damage == 0
    assert consumed == 10


def test_unblocked_outcomes_ignore_block_pool():
    assert get_damage(hitter(), target(), BodyPart.TORSO, HitType.NORMAL_HIT, 5) == (10, 0)


def test_protection_never_makes_damage_negative():
    armored = target(torso=BodyPartStat(protection=15))
    assert get_damage(hitter(), armored, BodyPart.TORSO, HitType.NORMAL_HIT, 0) == (0, 0)


def test_armor_penetration_reduces_protection():
    armored = target(torso=BodyPartStat(protection=8))
    assert get_damage(hitter(armor_pen=0.5), armored, BodyPart.TORSO, HitType.NORMAL_HIT, 0) == (6, 0)


def test_protection_is_read_from_the_hit_location():
    armored = target(hands=BodyPartStat(protection=10))
    assert get_damage(hitter(), armored, BodyPart.RIGHT_HAND, HitType.NORMAL_HIT, 0) == (0, 0)
    assert get_damage(hitter(), armored, BodyPart.HEAD, HitType.NORMAL_HIT, 0) == (10, 0)


def test_untargeted_hit_uses_torso():
    armored = target(torso=BodyPartStat(protection=4))
    assert get_damage(hitter(), armored, BodyPart.NONE, HitType.NORMAL_HIT, 0) == (6, 0)


def test_resistance_and_damage_taken():
    slashing = hitter(damage=((DamageType.SLASH, 10),))
    resistant = target(torso=BodyPartStat(slash=0.5))
    assert get_damage(slashing, resistant, BodyPart.TORSO, HitType.NORMAL_HIT, 0) == (5, 0)
    fragile = target(damage_taken=1.5)
    assert get_damage(slashing, fragile, BodyPart.TORSO, HitType.NORMAL_HIT, 0) == (15, 0)


def test_magical_damage_is_unscaled_and_half_reduced():
    caster = hitter(damage=((DamageType.MAGICAL, 10),), weapon_dmg=2.0)
    armored = target(torso=BodyPartStat(protection=6))
    assert get_damage(caster, armored, BodyPart.TORSO, HitType.NORMAL_HIT, 0) == (7, 0)


def test_magical_damage_only_sees_half_the_block_pool():
    caster = hitter(damage=((DamageType.POISON, 10),))
    damage, consumed = get_damage(caster, target(), BodyPart.TORSO, HitType.BLOCK_NORMAL_HIT, 6)
    assert damage == 7
    assert consumed == 6


def test_protection_is_one_running_budget_across_components():
    attacker = hitter(damage=((DamageType.PHYSICAL, 4), (DamageType.PHYSICAL, 10)))
    armored = target(torso=BodyPartStat(protection=6))
    # 4 uses 4 of the 6 protection, the 10 only meets the remaining 2
    assert get_damage(attacker, armored, BodyPart.TORSO, HitType.NORMAL_HIT, 0) == (8, 0)


def test_block_is_one_running_budget_across_components():
    attacker = hitter(damage=((DamageType.PHYSICAL, 3), (DamageType.PHYSICAL, 10)))
    damage, consumed = get_damage(attacker, target(), BodyPart.TORSO, HitType.BLOCK_NORMAL_HIT, 5)
    assert damage == 8
    assert consumed == 5


def test_landed_hit_without_damage_is_incomplete():
    with pytest.raises(IncompleteStatError):
        get_damage(Stat(hp=10), target(), BodyPart.TORSO, HitType.NORMAL_HIT, 0)


def test_certain_effect_triggers_and_others_do_not():
    rng = random.Random(11)
    attacker = hitter(bleed_chance=1.0)
    result = additional_effect(attacker, target(), BodyPart.TORSO, False, rng)
    assert set(result) == {
        SkillId.BLEEDING,
        SkillId.DAZE,
        SkillId.STUN,
        SkillId.KNOCKBACK,
        SkillId.IMMOBILIZATION,
        SkillId.STAGGER,
    }
    assert result[SkillId.BLEEDING] is True
    assert not any(v for k, v in result.items() if k is not SkillId.BLEEDING)


def test_full_fortitude_resists_everything():
    rng = random.Random(5)
    attacker = hitter(bleed_chance=1.0, stun_chance=1.0, stagger_chance=1.0)
    for _ in range(50):
        result = additional_effect(attacker, target(fortitude=1.0), BodyPart.HEAD, True, rng)
        assert not any(result.values())


def test_crit_adds_weapon_type_bonus():
    blade = hitter(weapon_type=WeaponType.BLADE)
    assert effect_chance(blade, SkillId.BLEEDING, is_crit=False) == 0.0
    assert effect_chance(blade, SkillId.BLEEDING, is_crit=True) == pytest.approx(0.25)
    blunt = hitter(weapon_type=WeaponType.BLUNT, stun_chance=0.05)
    assert effect_chance(blunt, SkillId.STUN, is_crit=True) == pytest.approx(0.15)
    assert effect_chance(blunt, SkillId.BLEEDING, is_crit=True) == 0.0


def test_effect_resistance_combines_fortitude_and_specific():
    defender = target(
        fortitude=0.2,
        control_resistance=0.3,
        move_resistance=0.9,
        torso=BodyPartStat(bleed=0.3),
    )
    assert effect_resistance(defender, SkillId.BLEEDING, BodyPart.TORSO) == pytest.approx(0.5)
    assert effect_resistance(defender, SkillId.BLEEDING, BodyPart.HEAD) == pytest.approx(0.2)
    assert effect_resistance(defender, SkillId.STUN, BodyPart.HEAD) == pytest.approx(0.5)
    assert effect_resistance(defender, SkillId.KNOCKBACK, BodyPart.HEAD) == pytest.approx(1.0)
    assert effect_resistance(defender, SkillId.STAGGER, BodyPart.HEAD) == pytest.approx(0.2)


def test_residual_damage():
    assert residual_damage(Stat()) == 0
    assert residual_damage(Stat(hp=50, residual_flat=3, residual_percent=0.1)) == 8
    assert residual_damage(Stat(hp=50, residual_flat=-10)) == 0
