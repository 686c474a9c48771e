"""
Load combatant, effect and action-list definitions from a YAML data directory.

Layout (all keyed mappings):

    enemies.yaml      name -> stat fields
    characters.yaml   name -> stat fields
    effects.yaml      skill id -> {id, turn, effect}   (turn = duration in cycles)
    action.yaml       role label -> [skill id, ...]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

import yaml

from sim_rules import ACTIONS_FILE, BASE_ONLY_FIELDS, CHARACTERS_FILE, EFFECTS_FILE, ENEMIES_FILE
from skills import Skill
from stat_model import DataError, SkillId, Stat

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys instead of overwriting."""


def _construct_unique_mapping(loader, node, deep=False):
    seen = set()
    for key_node, _ in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in seen:
            raise DataError(f"duplicate key '{key}' at line {key_node.start_mark.line + 1}")
        seen.add(key)
    return loader.construct_mapping(node, deep=deep)


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping
)


@dataclass
class GameData:
    """Everything the engine needs, already parsed."""
    enemies: Dict[str, Stat]
    characters: Dict[str, Stat]
    skills: Dict[SkillId, Skill]
    actions: Dict[str, List[SkillId]]

    @property
    def combatants(self) -> Dict[str, Stat]:
        merged = dict(self.enemies)
        for name, stat in self.characters.items():
            if name in merged:
                raise DataError(f"combatant '{name}' defined as both enemy and character")
            merged[name] = stat
        return merged


def load_yaml(path: PathLike) -> Any:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.load(handle, Loader=UniqueKeyLoader)
    except OSError as exc:
        raise DataError(f"cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise DataError(f"invalid YAML in {path}: {exc}") from exc
    logger.debug("Loaded %s", path)
    return {} if data is None else data


def _expect_mapping(raw: Any, what: str) -> Mapping:
    if not isinstance(raw, Mapping):
        raise DataError(f"{what} must be a mapping, got {type(raw).__name__}")
    return raw


def parse_skill_id(raw: Any) -> SkillId:
    try:
        return SkillId(str(raw).lower())
    except ValueError:
        raise DataError(f"unknown skill id '{raw}'") from None


def parse_stats(raw: Any, what: str) -> Dict[str, Stat]:
    stats = {}
    for name, fields in _expect_mapping(raw, what).items():
        try:
            stats[str(name)] = Stat.from_dict(_expect_mapping(fields or {}, f"{what}.{name}"))
        except (TypeError, ValueError, KeyError) as exc:
            raise DataError(f"{what}.{name}: {exc}") from exc
    return stats


def parse_skills(raw: Any) -> Dict[SkillId, Skill]:
    skills: Dict[SkillId, Skill] = {}
    for key, entry in _expect_mapping(raw, "effects").items():
        entry = _expect_mapping(entry or {}, f"effects.{key}")
        skill_id = parse_skill_id(entry.get("id", key))
        if skill_id is not parse_skill_id(key):
            raise DataError(f"effects.{key}: id '{skill_id.value}' does not match its key")
        try:
            duration = int(entry.get("turn", 0))
            effect = Stat.from_dict(_expect_mapping(entry.get("effect") or {}, f"effects.{key}.effect"))
        except (TypeError, ValueError, KeyError) as exc:
            raise DataError(f"effects.{key}: {exc}") from exc
        if duration < 0:
            raise DataError(f"effects.{key}: turn must not be negative")
        for name in BASE_ONLY_FIELDS:
            if getattr(effect, name) is not None:
                logger.warning(
                    "effects.%s sets %s, which is only read from base stats; ignored", key, name
                )
        skills[skill_id] = Skill(id=skill_id, duration=duration, effect=effect)
    return skills


def parse_actions(raw: Any, skills: Mapping[SkillId, Skill]) -> Dict[str, List[SkillId]]:
    actions: Dict[str, List[SkillId]] = {}
    for label, ids in _expect_mapping(raw, "action").items():
        parsed = [parse_skill_id(skill_id) for skill_id in (ids or [])]
        for skill_id in parsed:
            if skill_id not in skills:
                raise DataError(
                    f"action list '{label}' references '{skill_id.value}' "
                    "which has no definition in effects"
                )
        actions[str(label)] = parsed
    return actions


def load_game_data(data_dir: PathLike) -> GameData:
    data_dir = Path(data_dir)
    enemies = parse_stats(load_yaml(data_dir / ENEMIES_FILE), "enemies")
    characters = parse_stats(load_yaml(data_dir / CHARACTERS_FILE), "characters")
    skills = parse_skills(load_yaml(data_dir / EFFECTS_FILE))
    actions = parse_actions(load_yaml(data_dir / ACTIONS_FILE), skills)
    logger.info(
        "Loaded %d enemies, %d characters, %d effects, %d action lists from %s",
        len(enemies),
        len(characters),
        len(skills),
        len(actions),
        data_dir,
    )
    return GameData(enemies=enemies, characters=characters, skills=skills, actions=actions)
