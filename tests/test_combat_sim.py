import random

import pytest

import combat_sim as cs
from skills import Combatant, Skill
from stat_model import (
    DamageType,
    DataError,
    IncompleteStatError,
    SkillId,
    Stat,
)


def fighter(name, hp=100, damage=10, **kwargs):
    return Combatant(name, Stat(hp=hp, damage=((DamageType.PHYSICAL, damage),), **kwargs))


def test_guaranteed_hitter_ends_fight_in_ten_cycles():
    dummy = fighter("dummy", damage=0)
    hitter = fighter("hitter", damage=10)

    result = cs.simulate_damage_n_cycles(dummy, hitter, {}, max_cycles=100, rng=random.Random(1))

    assert result.first_hp_at_end == 0
    assert result.second_hp_at_end == 100
    assert result.turn == 10
    assert not result.first_wins


def test_cycle_cap_stops_a_stalemate():
    result = cs.simulate_damage_n_cycles(
        fighter("a", damage=0), fighter("b", damage=0), {}, max_cycles=7, rng=random.Random(1)
    )
    assert result == cs.SimulationResult(first_hp_at_end=100, second_hp_at_end=100, turn=7)


def test_counters_add_a_second_hit():
    striker = fighter("striker", damage=10, counter=1.0)
    target = fighter("target", damage=0)
    result = cs.simulate_damage_n_cycles(striker, target, {}, rng=random.Random(2))
    assert result.second_hp_at_end == 0
    assert result.turn == 5


def test_residual_damage_hits_its_holder():
    bleeder = fighter("bleeder", hp=20, damage=0, residual_flat=5)
    result = cs.simulate_damage_n_cycles(bleeder, fighter("idle", damage=0), {}, rng=random.Random(3))
    assert result.first_hp_at_end == 0
    assert result.second_hp_at_end == 100
    assert result.turn == 4


def test_block_pool_drains_and_recovers():
    guard = fighter("guard", damage=0, block=1.0, block_power=10, block_recovery=0.5)
    hitter = fighter("hitter", damage=4)
    sim = cs.CombatSimulator(guard, hitter, {}, rng=random.Random(4))

    assert sim.simulate_cycle()
    # 10 - 4 consumed = 6, +int(6 * 0.5) = 9
    assert sim.first_block == 9
    assert sim.first_hp == 100
    assert sim.simulate_cycle()
    assert sim.first_block == 7
    assert sim.first_hp == 100


def test_block_recovery_is_capped_at_block_power():
    guard = fighter("guard", damage=0, block=1.0, block_power=10, block_recovery=2.0)
    sim = cs.CombatSimulator(guard, fighter("hitter", damage=4), {}, rng=random.Random(4))
    sim.simulate_cycle()
    assert sim.first_block == 10


def test_triggered_skill_applies_from_next_cycle():
    stunner = fighter("stunner", damage=0, stun_chance=1.0)
    victim = fighter("victim", damage=10)
    stun = Skill(SkillId.STUN, duration=2, effect=Stat(can_act=False))
    sim = cs.CombatSimulator(stunner, victim, {SkillId.STUN: stun}, rng=random.Random(5), verbose=True)

    sim.simulate_cycle()
    # victim still swings in cycle 1, the stun applies from cycle 2
    assert sim.first_hp == 90
    assert victim.has_skill(SkillId.STUN)
    assert victim.compute().get("can_act") is False

    sim.simulate_cycle()
    # stunned victim cannot swing, and the fresh hit refreshes the stun
    assert sim.first_hp == 90
    assert victim.skills[SkillId.STUN].applied_at == 2
    assert sim.combat_log and sim.combat_log[0].startswith("Cycle 1: stunner attack")


def test_triggered_skill_lasts_its_full_duration():
    stunner = fighter("stunner", damage=0, stun_chance=1.0)
    victim = fighter("victim", damage=10)
    stun = Skill(SkillId.STUN, duration=1, effect=Stat(can_act=False))
    sim = cs.CombatSimulator(stunner, victim, {SkillId.STUN: stun}, rng=random.Random(6))

    sim.simulate_cycle()
    assert sim.first_hp == 90
    assert victim.skills[SkillId.STUN].applied_at == 1

    # no further stuns after the first cycle
    stunner.stat = Stat(hp=100, damage=((DamageType.PHYSICAL, 0),))
    sim.simulate_cycle()
    assert sim.first_hp == 90
    assert not victim.has_skill(SkillId.STUN)

    sim.simulate_cycle()
    assert sim.first_hp == 80


def test_counter_drains_pool_before_primary_attack():
    guard = fighter("guard", damage=0, block=1.0, block_power=10)
    hitter = fighter("hitter", damage=6, counter=1.0)
    sim = cs.CombatSimulator(guard, hitter, {}, rng=random.Random(7))

    assert sim.simulate_cycle()
    # counter absorbs 6 of 10, the attack only finds 4 left
    assert sim.first_hp == 98
    assert sim.first_block == 0
    assert sim.second_hp == 100


def test_primary_attack_drains_pool_before_counter():
    hitter = fighter("hitter", damage=6, counter=1.0)
    guard = fighter("guard", damage=0, block=1.0, block_power=10)
    sim = cs.CombatSimulator(hitter, guard, {}, rng=random.Random(8))

    assert sim.simulate_cycle()
    assert sim.second_hp == 98
    assert sim.second_block == 0
    assert sim.first_hp == 100


def test_missing_hp_or_damage_abandons_the_trial():
    no_hp = Combatant("ghost", Stat(damage=((DamageType.PHYSICAL, 1),)))
    with pytest.raises(IncompleteStatError):
        cs.simulate_damage_n_cycles(no_hp, fighter("b"), {})

    no_damage = Combatant("pacifist", Stat(hp=10))
    with pytest.raises(IncompleteStatError):
        cs.simulate_damage_n_cycles(no_damage, fighter("b"), {})

    with pytest.raises(IncompleteStatError):
        cs.monte_carlo_damage(no_hp, fighter("b"), {}, trials=5)


def test_deterministic_fight_has_zero_variance():
    win, first_hp, second_hp = cs.monte_carlo_damage(
        fighter("dummy", damage=0), fighter("hitter", damage=10), {}, trials=50, seed=1
    )
    assert win.mean == 0.0
    assert win.var == pytest.approx(0.0)
    assert win.half_width() == pytest.approx(0.0)
    assert first_hp.mean == 0.0
    assert second_hp.mean == pytest.approx(100.0)
    assert second_hp.var == pytest.approx(0.0)
    assert second_hp.half_width() == pytest.approx(0.0)
    assert second_hp.n == 50


def test_trials_do_not_share_state():
    hitter = fighter("hitter", damage=10)
    dummy = fighter("dummy", damage=0)
    cs.monte_carlo_damage(dummy, hitter, {}, trials=3, seed=1)
    assert not dummy.skills
    assert not hitter.skills


def test_seed_makes_runs_reproducible():
    first = fighter("a", damage=12, accuracy=0.6, crit_chance=0.2, crit_eff=2.0, counter=0.3)
    second = fighter("b", damage=11, accuracy=0.7, dodge=0.1, block=0.3, block_power=8)
    run1 = cs.monte_carlo_damage(first, second, {}, trials=200, seed=123)
    run2 = cs.monte_carlo_damage(first, second, {}, trials=200, seed=123)
    assert run1 == run2
    assert 0.0 <= run1[0].mean <= 1.0


def test_trial_totals_merge_in_any_order():
    a = cs.TrialTotals.from_results([cs.SimulationResult(10, 0, 3), cs.SimulationResult(0, 5, 2)])
    b = cs.TrialTotals.from_results([cs.SimulationResult(4, 0, 1)])
    c = cs.TrialTotals(trials=1, wins=0, sum_hp_second=7.0, sumsq_hp_second=49.0, sum_turns=9)

    assert (a + b) + c == a + (b + c)
    assert a + b == b + a
    merged = a + b
    assert merged.trials == 3
    assert merged.wins == 2
    assert merged.sum_hp_first == 14.0
    assert merged.sumsq_hp_first == 116.0
    assert merged.sum_turns == 6


def test_summary_statistics():
    totals = cs.TrialTotals(
        trials=4, wins=2, sum_hp_first=20.0, sumsq_hp_first=200.0,
        sum_hp_second=8.0, sumsq_hp_second=32.0, sum_turns=12,
    )
    win, first_hp, second_hp = cs.summarize_totals(totals)
    assert win.mean == 0.5
    assert win.var == pytest.approx(0.25)
    assert first_hp.mean == 5.0
    assert first_hp.var == pytest.approx(25.0)
    assert second_hp.var == pytest.approx(4.0)


def test_confidence_interval_uses_196():
    stat = cs.StatSimu(mean=0.5, var=0.25, n=100)
    low, mean, high = stat.confidence_interval()
    assert mean == 0.5
    assert high - mean == pytest.approx(0.098)
    assert mean - low == pytest.approx(0.098)
    assert cs.StatSimu(mean=1.0, var=0.0, n=0).half_width() == 0.0


def test_sample_size_helpers():
    assert cs.required_trials_for_margin(margin=0.01, confidence=0.95) == 9604
    assert cs.error_margin_for_trials(9604, confidence=0.95) == pytest.approx(0.01, abs=1e-4)
    with pytest.raises(ValueError):
        cs.required_trials_for_margin(margin=0.0)
    with pytest.raises(ValueError):
        cs.error_margin_for_trials(0)


def test_run_scenario_with_action_lists():
    stats = {
        "dummy": Stat(hp=100, damage=((DamageType.PHYSICAL, 0),)),
        "hitter": Stat(hp=100, damage=((DamageType.PHYSICAL, 5),), weapon_dmg=1.0),
    }
    skills = {SkillId.WARCRY: Skill(SkillId.WARCRY, duration=0, effect=Stat(weapon_dmg=1.0))}
    actions = {"plain": [], "buffed": [SkillId.WARCRY]}

    plain = cs.run_scenario(
        cs.Scenario("plain", "dummy", "plain", "hitter", "plain"),
        stats, skills, actions, trials=10, seed=3,
    )
    buffed = cs.run_scenario(
        cs.Scenario("buffed", "dummy", "plain", "hitter", "buffed"),
        stats, skills, actions, trials=10, seed=3,
    )
    assert plain.avg_turns == 20.0
    assert buffed.avg_turns == 10.0
    assert buffed.win.mean == 0.0
    rows = buffed.rows()
    assert [row[1] for row in rows] == ["win rate", "dummy hp", "hitter hp"]


def test_run_scenario_rejects_unknown_names():
    stats = {"a": Stat(hp=1, damage=((DamageType.PHYSICAL, 1),))}
    with pytest.raises(DataError):
        cs.run_scenario(cs.Scenario("x", "a", "l", "missing", "l"), stats, {}, {"l": []}, trials=1)
    with pytest.raises(DataError):
        cs.run_scenario(cs.Scenario("x", "a", "nope", "a", "l"), stats, {}, {"l": []}, trials=1)
    with pytest.raises(DataError):
        cs.build_combatant("a", stats["a"], {}, [SkillId.WARCRY])
