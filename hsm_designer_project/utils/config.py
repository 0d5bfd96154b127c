# hsm_designer_project/utils/config.py
"""
Central configuration file for the HSM Designer core.

Contains static application settings, document defaults and the layout
metrics used when a loaded document carries no saved geometry.
"""

# ==============================================================================
# STATIC APPLICATION CONFIGURATION
# ==============================================================================
# These values are constant and define the application's identity.

APP_VERSION = "1.0.0"
APP_NAME = "Hierarchical State Machine Designer"
FILE_EXTENSION = ".smb"
FILE_FILTER = f"State Machine Files (*{FILE_EXTENSION});;YAML Files (*.yaml *.yml);;All Files (*)"
DEFAULT_DOCUMENT_NAME = f"statemachine{FILE_EXTENSION}"

PHOENIX_EXPORT_SUFFIX = "-phoenix.yaml"
DEFAULT_PHOENIX_EXPORT_NAME = f"statemachine{PHOENIX_EXPORT_SUFFIX}"
# Extensions stripped from the current file name when deriving an export name
RECOGNIZED_DOCUMENT_EXTENSIONS = (".smb", ".yaml", ".yml")

DOCUMENT_ENCODING = "utf-8"


# ==============================================================================
# NODE DEFAULTS
# ==============================================================================

DEFAULT_STATE_WIDTH = 150
DEFAULT_STATE_HEIGHT = 50
DEFAULT_DECISION_SIZE = 15

# Id / name prefixes handed out by the IdAllocator
NODE_ID_PREFIX = "node_"
STATE_NAME_PREFIX = "S"
DECISION_NAME_PREFIX = "D"
PROXY_NAME_PREFIX = "P"


# ==============================================================================
# AUTO-LAYOUT (documents without saved geometry)
# ==============================================================================

LAYOUT_TOP_LEVEL_X = 50
LAYOUT_TOP_LEVEL_Y = 50
LAYOUT_HORIZONTAL_GAP = 50
# Children are tiled left-to-right below the parent's header
LAYOUT_CHILD_OFFSET_X = 20
LAYOUT_CHILD_OFFSET_Y = 40
# Extra room an ungeometried parent adds around its children
LAYOUT_PARENT_MARGIN_X = 40
LAYOUT_PARENT_MARGIN_BOTTOM = 20

# History marker placed inside a state, relative to the state's size
HISTORY_MARKER_POS_RATIO = 0.05
HISTORY_MARKER_SIZE_RATIO = 0.15
ROOT_HISTORY_MARKER_POS = (20, 20)
ROOT_HISTORY_MARKER_SIZE = 20


# ==============================================================================
# YAML EMISSION
# ==============================================================================

YAML_INDENT = 2
# No line folding: code fragments must survive byte-for-byte.
YAML_LINE_WIDTH = float("inf")
