"""
Transient effects ("skills") and the combatant that carries them.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Mapping

from damage_rules import additional_effect
from hit_chance import BodyPart
from stat_model import SkillId, Stat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Skill:
    """An effect definition: what it modifies and for how many cycles."""
    id: SkillId
    duration: int = 0
    effect: Stat = field(default_factory=Stat)

    @property
    def is_permanent(self) -> bool:
        return self.duration == 0


@dataclass
class ActiveSkill:
    skill: Skill
    applied_at: int = 0

    def expired(self, cycle: int) -> bool:
        if self.skill.is_permanent:
            return False
        return cycle >= self.applied_at + self.skill.duration


@dataclass
class Combatant:
    """Base stats plus the skills currently affecting them."""
    name: str
    stat: Stat
    skills: Dict[SkillId, ActiveSkill] = field(default_factory=dict)

    def copy(self) -> "Combatant":
        """Independent copy for a fresh trial; Stat and Skill are immutable."""
        return Combatant(
            name=self.name,
            stat=self.stat,
            skills={
                skill_id: ActiveSkill(entry.skill, entry.applied_at)
                for skill_id, entry in self.skills.items()
            },
        )

    def compute(self) -> Stat:
        """Effective attributes: base stat with every active effect folded in."""
        effective = self.stat
        for entry in self.skills.values():
            effective = effective + entry.skill.effect
        return effective

    def add_skill(self, skill: Skill, cycle: int = 0) -> None:
        """Insert or overwrite; the skill is active from cycle `cycle + 1` on."""
        self.skills[skill.id] = ActiveSkill(skill, cycle)

    def remove_outdated_skills(self, cycle: int) -> None:
        """Drop timed skills whose duration has elapsed after `cycle` cycles."""
        expired = [
            skill_id for skill_id, entry in self.skills.items() if entry.expired(cycle)
        ]
        for skill_id in expired:
            del self.skills[skill_id]
        if expired:
            logger.debug("%s: skills expired after cycle %d: %s", self.name, cycle, expired)

    def has_skill(self, skill_id: SkillId) -> bool:
        return skill_id in self.skills

    def resolve_hit(
        self,
        other: "Combatant",
        attacker_stat: Stat,
        defender_stat: Stat,
        skills_map: Mapping[SkillId, Skill],
        body_part: BodyPart,
        is_crit: bool,
        rng: random.Random,
        cycle: int = 0,
    ) -> None:
        """Roll this combatant's status effects onto `other` after a landed hit."""
        triggered = additional_effect(attacker_stat, defender_stat, body_part, is_crit, rng)
        for skill_id, hit in triggered.items():
            if not hit:
                continue
            skill = skills_map.get(skill_id)
            if skill is None:
                logger.debug("%s triggered %s but it has no definition", self.name, skill_id.value)
                continue
            other.add_skill(skill, cycle)
