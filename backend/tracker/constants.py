from __future__ import annotations

ROLE_DM = "dm"
ROLE_PLAYER = "player"
DEFAULT_ROLE = ROLE_PLAYER

PAGE_COMBAT = "combat"
PAGE_SPELLS = "spells"
PAGE_MONSTERS = "monsters"
PAGE_INVENTORY = "inventory"

PAGES = (PAGE_COMBAT, PAGE_SPELLS, PAGE_MONSTERS, PAGE_INVENTORY)

IDENTITY_FIELDS = ("id", "type")

# Disjoint field ownership per page. Extraction and merge both read this table.
PAGE_FIELDS: dict[str, tuple[str, ...]] = {
    PAGE_COMBAT: (
        "currentHp",
        "maxHp",
        "tempHp",
        "initiative",
        "statusEffects",
        "deathSaves",
        "concentration",
        "resources",
    ),
    PAGE_SPELLS: ("spellSlots", "abilities", "hitDice"),
    PAGE_MONSTERS: ("monsterAbilities",),
    PAGE_INVENTORY: ("inventory",),
}

# Pages whose history only the DM may record, replay or see.
DM_ONLY_PAGES = frozenset({PAGE_MONSTERS})

MAX_HISTORY = 20

CHARACTER_PLAYER = "player"
CHARACTER_MONSTER = "monster"

DIRECTION_UNDO = "undo"
DIRECTION_REDO = "redo"

# Inbound events
EVENT_REGISTER_MODE = "register-mode"
EVENT_UPDATE_STATE = "update-state"
EVENT_UPDATE_CHARACTER = "update-character"
EVENT_UPDATE_COMBAT = "update-combat"
EVENT_SAVE_HISTORY = "save-history-entry"
EVENT_REQUEST_UNDO = "request-undo"
EVENT_REQUEST_REDO = "request-redo"

# Outbound events
EVENT_STATE_SYNC = "state-sync"
EVENT_CHARACTER_UPDATED = "character-updated"
EVENT_COMBAT_UPDATED = "combat-updated"
EVENT_HISTORY_APPLIED = "history-applied"
EVENT_HISTORY_ERROR = "history-error"
EVENT_ERROR = "error"
