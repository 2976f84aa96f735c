"""Constants for the LabFreezer integration.

Defines the integration domain, the public integration version, and the
fixed vocabularies (box layouts, coating and solvent options) shared by the
models and the command surface.
"""

from typing import Final

# Integration domain used across all modules
DOMAIN: Final[str] = "labfreezer"

# Public integration version (kept in sync with manifest.json)
INTEGRATION_VERSION: Final[str] = "0.1.0"

# Selection value that shows archived samples instead of a box
TRASH_SELECTION: Final[str] = "TRASH"

# Owner used for service calls that carry no Home Assistant user
DEFAULT_OWNER_ID: Final[str] = "local"

# Position held by archived samples
ARCHIVED_POSITION: Final[int] = -1

LAYOUT_10X10: Final[str] = "10x10"
LAYOUT_9X9: Final[str] = "9x9"
LAYOUT_CAPACITY: Final[dict[str, int]] = {LAYOUT_10X10: 100, LAYOUT_9X9: 81}
DEFAULT_LAYOUT: Final[str] = LAYOUT_10X10

COATING_OTHER: Final[str] = "Other"
COATING_OPTIONS: Final[tuple[str, ...]] = ("Oleic acid (OA)", COATING_OTHER)
DEFAULT_COATING: Final[str] = COATING_OPTIONS[0]

SOLVENT_OTHER: Final[str] = "Other"
SOLVENT_OPTIONS: Final[tuple[str, ...]] = (
    "Cyclohexane",
    "Methanol",
    "Water",
    "Toluene",
    "DMSO",
    SOLVENT_OTHER,
)
DEFAULT_SOLVENT: Final[str] = SOLVENT_OPTIONS[0]

# Error text recorded when a copy finds no free cell
CONTAINER_FULL_MESSAGE: Final[str] = "container full"
