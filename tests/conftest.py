import textwrap

import pytest

ENEMIES = """
brute:
  hp: 60
  damage:
    - [crush, 10]
  accuracy: 0.8
"""

CHARACTERS = """
hero:
  hp: 80
  damage: {slash: 12}
  weapon_dmg: 1.0
  weapon_type: blade
  torso:
    protection: 2
"""

EFFECTS = """
bleeding:
  id: bleeding
  turn: 3
  effect:
    residual_flat: 2
warcry:
  id: warcry
  turn: 0
  effect:
    weapon_dmg: 0.5
"""

ACTIONS = """
other_ref: []
self_ref: []
other: []
self: [warcry]
"""


def write_data_dir(path, **overrides):
    files = {
        "enemies.yaml": ENEMIES,
        "characters.yaml": CHARACTERS,
        "effects.yaml": EFFECTS,
        "action.yaml": ACTIONS,
    }
    files.update(overrides)
    for name, text in files.items():
        if text is not None:
            (path / name).write_text(textwrap.dedent(text), encoding="utf-8")
    return path


@pytest.fixture
def data_dir(tmp_path):
    return write_data_dir(tmp_path)


@pytest.fixture
def make_data_dir(tmp_path):
    def make(**overrides):
        return write_data_dir(tmp_path, **overrides)
    return make
