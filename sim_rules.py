# -*- coding: utf-8 -*-

# Core simulation rules (summary for quick balance edits):
# - A trial runs cycles, at most DEFAULT_MAX_CYCLES. Each cycle both sides
#   compute effective stats (base + active skills), then four exchanges run in
#   a fixed order: first attack, second counter, second attack, first counter.
# - Hit roll: six outcomes (crit / normal / half, each optionally blocked) plus
#   "no hit". Accuracy, dodge and fumble shape the unblocked outcomes, block
#   chance splits each one into a blocked copy.
# - Counters use the same distribution scaled by the counter-attacker's
#   counter stat (absent = DEFAULT_COUNTER = no counters).
# - Damage: physical-family components are scaled by the weapon multiplier,
#   magical-family components are not and only see half of the block and
#   protection budgets. Block and protection are consumed component by
#   component from one running budget.
# - Status effects: one chance roll and one resistance roll per effect; crits
#   add CRIT_EFFECT_BONUS for the attacker's weapon type.
# - Skills expire after `duration` completed cycles; duration 0 is permanent.
# - Between cycles block pools regenerate by block_recovery * pool, capped at
#   block_power. Residual (DoT) damage is taken by its holder every cycle.

# Defaults applied at point of use when a stat field is absent.
DEFAULT_ACCURACY = 1.0
DEFAULT_FUMBLE = 0.0
DEFAULT_CRIT_CHANCE = 0.0
DEFAULT_CRIT_EFF = 1.0
DEFAULT_WEAPON_DMG = 1.0
DEFAULT_MAIN_HAND_EFF = 1.0
DEFAULT_ARMOR_PEN = 0.0
DEFAULT_COUNTER = 0.0
DEFAULT_DODGE = 0.0
DEFAULT_BLOCK = 0.0
DEFAULT_BLOCK_POWER = 0
DEFAULT_BLOCK_RECOVERY = 0.0
DEFAULT_RESISTANCE = 0.0
DEFAULT_PROTECTION = 0
DEFAULT_DAMAGE_TAKEN = 1.0
DEFAULT_EFFECT_CHANCE = 0.0
DEFAULT_RESIDUAL_FLAT = 0
DEFAULT_RESIDUAL_PERCENT = 0.0
DEFAULT_CAN_ACT = True

# Crit efficiency never lowers damage below a normal hit.
MIN_CRIT_EFF = 1.0

# Half (glancing) hits deal this share of a normal hit multiplier.
HALF_HIT_FACTOR = 0.5

# Magical components only see this share of block and protection budgets.
MAGICAL_BUDGET_DIVISOR = 2

# Simulation sizes.
DEFAULT_MAX_CYCLES = 100
DEFAULT_TRIALS = 10_000

# Statistics: z-value of the reported two-sided 95% interval.
CONFIDENCE_Z = 1.96
DEFAULT_CONFIDENCE = 0.95
TARGET_MARGIN = 0.01
EPSILON = 1e-6

# Extra status-effect chance granted by a critical hit, per weapon type.
CRIT_EFFECT_BONUS = {
    "none": {},
    "blade": {"bleeding": 0.25},
    "point": {"bleeding": 0.10, "immobilization": 0.10},
    "blunt": {"daze": 0.20, "stun": 0.10, "knockback": 0.10},
}

# Which defender resistance opposes each status effect (besides fortitude).
EFFECT_RESISTANCE = {
    "bleeding": "bleed",
    "daze": "control",
    "stun": "control",
    "knockback": "move",
    "immobilization": "move",
    "stagger": None,
}

# Role labels of the action list file, paired into scenarios by the driver.
REFERENCE_ACTIONS = ("other_ref", "self_ref")
BUFFED_ACTIONS = ("other", "self")

# Data file names expected in a data directory.
ENEMIES_FILE = "enemies.yaml"
CHARACTERS_FILE = "characters.yaml"
EFFECTS_FILE = "effects.yaml"
ACTIONS_FILE = "action.yaml"

# Stat fields the cycle reads from base stats only; skill effects on them are ignored.
BASE_ONLY_FIELDS = ("hp", "block_power", "block_recovery")
