"""
Combat Simulator for two-combatant balance runs
Cycle-by-cycle duels with counters, block pools and status effects,
repeated as Monte Carlo trials and reduced to confidence intervals
"""

from __future__ import annotations

import logging
import math
import random
import statistics
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from damage_rules import get_damage, residual_damage
from hit_chance import build_hit
from sim_accel import (
    PARALLEL_MIN_SIMULATIONS,
    SimulationPool,
    plan_trial_chunks,
    reduce_trial_arrays,
    resolve_worker_count,
    run_chunks,
)
from sim_rules import (
    CONFIDENCE_Z,
    DEFAULT_CONFIDENCE,
    DEFAULT_MAX_CYCLES,
    DEFAULT_TRIALS,
    EPSILON,
    TARGET_MARGIN,
)
from skills import Combatant, Skill
from stat_model import DataError, SkillId, Stat

logger = logging.getLogger(__name__)

SkillsMap = Mapping[SkillId, Skill]


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True)
class SimulationResult:
    """End state of one trial."""
    first_hp_at_end: int
    second_hp_at_end: int
    turn: int

    @property
    def first_wins(self) -> bool:
        return self.first_hp_at_end > 0


@dataclass(frozen=True)
class TrialTotals:
    """Running sums over trials; `+` merges chunks in any order."""
    trials: int = 0
    wins: int = 0
    sum_hp_first: float = 0.0
    sumsq_hp_first: float = 0.0
    sum_hp_second: float = 0.0
    sumsq_hp_second: float = 0.0
    sum_turns: int = 0

    def __add__(self, other: "TrialTotals") -> "TrialTotals":
        if not isinstance(other, TrialTotals):
            return NotImplemented
        return TrialTotals(
            trials=self.trials + other.trials,
            wins=self.wins + other.wins,
            sum_hp_first=self.sum_hp_first + other.sum_hp_first,
            sumsq_hp_first=self.sumsq_hp_first + other.sumsq_hp_first,
            sum_hp_second=self.sum_hp_second + other.sum_hp_second,
            sumsq_hp_second=self.sumsq_hp_second + other.sumsq_hp_second,
            sum_turns=self.sum_turns + other.sum_turns,
        )

    @classmethod
    def from_results(cls, results: Sequence[SimulationResult]) -> "TrialTotals":
        wins, sum_first, sumsq_first, sum_second, sumsq_second, sum_turns = reduce_trial_arrays(
            [r.first_hp_at_end for r in results],
            [r.second_hp_at_end for r in results],
            [r.turn for r in results],
        )
        return cls(
            trials=len(results),
            wins=wins,
            sum_hp_first=sum_first,
            sumsq_hp_first=sumsq_first,
            sum_hp_second=sum_second,
            sumsq_hp_second=sumsq_second,
            sum_turns=sum_turns,
        )


@dataclass(frozen=True)
class StatSimu:
    """Mean, variance and sample count of one simulated quantity."""
    mean: float
    var: float
    n: int

    def half_width(self, z: float = CONFIDENCE_Z) -> float:
        if self.n <= 0:
            return 0.0
        return z * math.sqrt(max(self.var, 0.0) / self.n)

    def confidence_interval(self, z: float = CONFIDENCE_Z) -> Tuple[float, float, float]:
        factor = self.half_width(z)
        return self.mean - factor, self.mean, self.mean + factor

    @classmethod
    def from_sums(cls, total: float, total_sq: float, n: int) -> "StatSimu":
        if n <= 0:
            return cls(mean=0.0, var=0.0, n=0)
        mean = total / n
        return cls(mean=mean, var=max(total_sq / n - mean * mean, 0.0), n=n)


def summarize_totals(totals: TrialTotals) -> List[StatSimu]:
    """[win rate, first side end hp, second side end hp]."""
    n = totals.trials
    # win indicator is 0/1, so its sum of squares is its sum
    return [
        StatSimu.from_sums(totals.wins, totals.wins, n),
        StatSimu.from_sums(totals.sum_hp_first, totals.sumsq_hp_first, n),
        StatSimu.from_sums(totals.sum_hp_second, totals.sumsq_hp_second, n),
    ]


# ============================================================================
# COMBAT MECHANICS
# ============================================================================

class CombatSimulator:
    """Runs cycles between two combatants until one drops or the cap is hit."""

    def __init__(
        self,
        first: Combatant,
        second: Combatant,
        skills_map: SkillsMap,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        rng: Optional[random.Random] = None,
        verbose: bool = False,
    ):
        self.first = first
        self.second = second
        self.skills_map = skills_map
        self.max_cycles = max_cycles
        self.rng = rng if rng is not None else random.Random()
        self.verbose = verbose
        self.combat_log: List[str] = []
        self.cycle_count = 0
        self.first_hp = 0
        self.second_hp = 0
        self.first_block = 0
        self.second_block = 0
        self.reset_combat()

    def reset_combat(self):
        """Reset hit points and block pools from the base stats."""
        self.cycle_count = 0
        self.combat_log = []
        self.first_hp = self.first.stat.get_hp()
        self.second_hp = self.second.stat.get_hp()
        self.first_block = self.first.stat.get("block_power")
        self.second_block = self.second.stat.get("block_power")

    def exchange(
        self,
        attacker: Combatant,
        defender: Combatant,
        attacker_stat: Stat,
        defender_stat: Stat,
        block_pool: int,
        scale: Optional[float] = None,
    ) -> Tuple[int, int]:
        """One attack (or counter when `scale` is set). Returns (damage, block used)."""
        attacker_stat.get_damage()
        hit = build_hit(attacker_stat, defender_stat, self.rng)
        hit_type = hit.draw(self.rng, scale)
        damage, block_used = get_damage(
            attacker_stat, defender_stat, hit.body_part, hit_type, block_pool
        )
        if hit_type.triggers_effects:
            attacker.resolve_hit(
                defender,
                attacker_stat,
                defender_stat,
                self.skills_map,
                hit.body_part,
                hit_type.is_crit,
                self.rng,
                # effective stats are fixed for this cycle; the effect acts from the next one
                self.cycle_count + 1,
            )
        if self.verbose:
            kind = "counter" if scale is not None else "attack"
            self.combat_log.append(
                f"Cycle {self.cycle_count + 1}: {attacker.name} {kind} -> "
                f"{hit_type.value} on {hit.body_part.value} for {damage} "
                f"(block used {block_used})"
            )
        return damage, block_used

    def simulate_cycle(self) -> bool:
        """
        Simulate one cycle of combat.
        Returns True if combat continues, False if one side is down.
        """
        first_stat = self.first.compute()
        second_stat = self.second.compute()
        first_pool = self.first_block
        second_pool = self.second_block

        to_second, second_used = self.exchange(
            self.first, self.second, first_stat, second_stat, second_pool
        )
        counter_to_first, first_used_counter = self.exchange(
            self.second,
            self.first,
            second_stat,
            first_stat,
            first_pool,
            scale=second_stat.get("counter"),
        )
        to_first, first_used = self.exchange(
            self.second,
            self.first,
            second_stat,
            first_stat,
            max(0, first_pool - first_used_counter),
        )
        counter_to_second, second_used_counter = self.exchange(
            self.first,
            self.second,
            first_stat,
            second_stat,
            max(0, second_pool - second_used),
            scale=first_stat.get("counter"),
        )

        received_first = to_first + counter_to_first + residual_damage(first_stat)
        received_second = to_second + counter_to_second + residual_damage(second_stat)
        self.first_hp = max(0, self.first_hp - received_first)
        self.second_hp = max(0, self.second_hp - received_second)
        self.first_block = max(0, first_pool - (first_used_counter + first_used))
        self.second_block = max(0, second_pool - (second_used + second_used_counter))

        self.cycle_count += 1
        self.first.remove_outdated_skills(self.cycle_count)
        self.second.remove_outdated_skills(self.cycle_count)

        if self.first_hp == 0 or self.second_hp == 0:
            return False

        self.first_block = self.recover_block(self.first, self.first_block)
        self.second_block = self.recover_block(self.second, self.second_block)
        return True

    @staticmethod
    def recover_block(combatant: Combatant, pool: int) -> int:
        recovered = pool + int(pool * combatant.stat.get("block_recovery"))
        return min(recovered, combatant.stat.get("block_power"))

    def run_combat(self) -> SimulationResult:
        """Run cycles until a side drops or max_cycles is reached."""
        while self.cycle_count < self.max_cycles:
            if not self.simulate_cycle():
                break
        return SimulationResult(
            first_hp_at_end=self.first_hp,
            second_hp_at_end=self.second_hp,
            turn=self.cycle_count,
        )


# ============================================================================
# MONTE CARLO
# ============================================================================

def simulate_damage_n_cycles(
    first: Combatant,
    second: Combatant,
    skills_map: SkillsMap,
    max_cycles: int = DEFAULT_MAX_CYCLES,
    rng: Optional[random.Random] = None,
) -> SimulationResult:
    """One trial on the given combatants (they are mutated)."""
    sim = CombatSimulator(first, second, skills_map, max_cycles=max_cycles, rng=rng)
    return sim.run_combat()


def _run_trial_chunk(
    first: Combatant,
    second: Combatant,
    skills_map: SkillsMap,
    max_cycles: int,
    simulations: int,
    seed: Optional[int],
) -> TrialTotals:
    rng = random.Random(seed)
    results = []
    for _ in range(simulations):
        results.append(
            simulate_damage_n_cycles(
                first.copy(), second.copy(), skills_map, max_cycles=max_cycles, rng=rng
            )
        )
    return TrialTotals.from_results(results)


def monte_carlo_totals(
    first: Combatant,
    second: Combatant,
    skills_map: SkillsMap,
    max_cycles: int = DEFAULT_MAX_CYCLES,
    trials: int = DEFAULT_TRIALS,
    seed: Optional[int] = None,
    pool: Optional[SimulationPool] = None,
    max_workers: Optional[int] = None,
    show_progress: bool = False,
) -> TrialTotals:
    """Run `trials` independent trials, in chunks on a pool when worthwhile."""
    if trials <= 0:
        raise ValueError("trials must be positive.")
    # fail fast instead of inside a worker
    for combatant in (first, second):
        combatant.stat.get_hp()

    parallel = pool is not None or (
        max_workers is not None and resolve_worker_count(max_workers) > 1
    )
    if parallel and trials >= PARALLEL_MIN_SIMULATIONS:
        workers = pool.start().workers if pool is not None else resolve_worker_count(max_workers)
        chunks = plan_trial_chunks(trials, workers, seed=seed)
    else:
        chunks = plan_trial_chunks(trials, 1, seed=seed, chunks_per_worker=1)

    logger.debug("Running %d trials in %d chunk(s)", trials, len(chunks))
    common = (first, second, skills_map, max_cycles)
    if len(chunks) == 1:
        (chunk,) = chunks
        return _run_trial_chunk(*common, chunk.size, chunk.seed)

    chunk_totals = run_chunks(
        _run_trial_chunk,
        common,
        chunks,
        pool=pool,
        max_workers=max_workers,
        show_progress=show_progress,
    )
    total = TrialTotals()
    for chunk in chunk_totals:
        total = total + chunk
    return total


def monte_carlo_damage(
    first: Combatant,
    second: Combatant,
    skills_map: SkillsMap,
    max_cycles: int = DEFAULT_MAX_CYCLES,
    trials: int = DEFAULT_TRIALS,
    seed: Optional[int] = None,
    pool: Optional[SimulationPool] = None,
    max_workers: Optional[int] = None,
    show_progress: bool = False,
) -> List[StatSimu]:
    """[win rate, first end hp, second end hp] over `trials` trials."""
    totals = monte_carlo_totals(
        first,
        second,
        skills_map,
        max_cycles=max_cycles,
        trials=trials,
        seed=seed,
        pool=pool,
        max_workers=max_workers,
        show_progress=show_progress,
    )
    return summarize_totals(totals)


# ============================================================================
# SAMPLE SIZE
# ============================================================================

def clamp_prob(value: float, eps: float = EPSILON) -> float:
    return min(max(value, eps), 1 - eps)


def z_for_confidence(confidence: float) -> float:
    if not 0 < confidence < 1:
        raise ValueError("confidence must be between 0 and 1.")
    return statistics.NormalDist().inv_cdf(1 - (1 - confidence) / 2)


def required_trials_for_margin(
    margin: float = TARGET_MARGIN,
    confidence: float = DEFAULT_CONFIDENCE,
    win_rate: float = 0.5,
) -> int:
    """
    Return required trials for a two-sided binomial proportion CI.
    Uses a normal approximation; win_rate defaults to 0.5 (worst-case variance).
    """
    if not 0 < margin < 1:
        raise ValueError("margin must be between 0 and 1.")
    z = z_for_confidence(confidence)
    win_rate = clamp_prob(win_rate)
    n = (z * z) * (win_rate * (1 - win_rate)) / (margin * margin)
    return max(1, math.ceil(n))


def error_margin_for_trials(
    trials: int,
    confidence: float = DEFAULT_CONFIDENCE,
    win_rate: float = 0.5,
) -> float:
    """Estimate absolute win-rate error margin for a given trial count."""
    if trials <= 0:
        raise ValueError("trials must be positive.")
    z = z_for_confidence(confidence)
    win_rate = clamp_prob(win_rate)
    return z * math.sqrt((win_rate * (1 - win_rate)) / trials)


# ============================================================================
# SCENARIOS
# ============================================================================

@dataclass(frozen=True)
class Scenario:
    """Two named combatants, each with a pre-battle action list label."""
    name: str
    first: str
    first_actions: str
    second: str
    second_actions: str


@dataclass(frozen=True)
class ScenarioReport:
    name: str
    first: str
    second: str
    win: StatSimu
    first_hp: StatSimu
    second_hp: StatSimu
    avg_turns: float

    def rows(self) -> List[List[object]]:
        """Label, low, mean, high for each reported quantity."""
        out = []
        for label, stat in (
            ("win rate", self.win),
            (f"{self.first} hp", self.first_hp),
            (f"{self.second} hp", self.second_hp),
        ):
            low, mean, high = stat.confidence_interval()
            out.append([self.name, label, low, mean, high])
        return out


def build_combatant(
    name: str,
    stat: Stat,
    skills_map: SkillsMap,
    skill_ids: Sequence[SkillId] = (),
) -> Combatant:
    """A combatant with its pre-battle skills already active."""
    combatant = Combatant(name=name, stat=stat)
    for skill_id in skill_ids:
        try:
            combatant.add_skill(skills_map[skill_id], 0)
        except KeyError:
            raise DataError(f"unknown skill '{skill_id}' for {name}") from None
    return combatant


def run_scenario(
    scenario: Scenario,
    stats: Mapping[str, Stat],
    skills_map: SkillsMap,
    actions: Mapping[str, Sequence[SkillId]],
    max_cycles: int = DEFAULT_MAX_CYCLES,
    trials: int = DEFAULT_TRIALS,
    seed: Optional[int] = None,
    pool: Optional[SimulationPool] = None,
    max_workers: Optional[int] = None,
    show_progress: bool = False,
) -> ScenarioReport:
    combatants: Dict[str, Combatant] = {}
    for role, key, label in (
        ("first", scenario.first, scenario.first_actions),
        ("second", scenario.second, scenario.second_actions),
    ):
        if key not in stats:
            raise DataError(f"unknown combatant '{key}' in scenario {scenario.name}")
        if label not in actions:
            raise DataError(f"unknown action list '{label}' in scenario {scenario.name}")
        combatants[role] = build_combatant(key, stats[key], skills_map, actions[label])

    logger.info(
        "Scenario %s: %s [%s] vs %s [%s], %d trials",
        scenario.name,
        scenario.first,
        scenario.first_actions,
        scenario.second,
        scenario.second_actions,
        trials,
    )
    totals = monte_carlo_totals(
        combatants["first"],
        combatants["second"],
        skills_map,
        max_cycles=max_cycles,
        trials=trials,
        seed=seed,
        pool=pool,
        max_workers=max_workers,
        show_progress=show_progress,
    )
    win, first_hp, second_hp = summarize_totals(totals)
    return ScenarioReport(
        name=scenario.name,
        first=scenario.first,
        second=scenario.second,
        win=win,
        first_hp=first_hp,
        second_hp=second_hp,
        avg_turns=totals.sum_turns / totals.trials if totals.trials else 0.0,
    )
