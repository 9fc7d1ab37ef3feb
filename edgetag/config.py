# ===== SERVER CONFIGURATION =====
class ServerConfig:
    """WebSocket server configuration."""
    HOST = "localhost"
    PORT = 8765


# ===== GAME DEFAULTS =====
class GameDefaults:
    """Default settings for new sessions."""

    # Grid dimensions
    GRID_SIZE = 10

    # Session setup
    MODE = "offense"  # "offense", "defense" or "twoPlayer"
    DIFFICULTY = "hard"
    REMOVAL_POLICY = "center"  # "uniform" or "center"

    # Opening position
    MIN_SEPARATION_RATIO = 0.5  # of the grid size, measured in columns
    OFFENSE_INITIAL_REMOVALS = (3, 4)  # inclusive range, offense mode only

    # Hard bot search
    LOOKAHEAD_DEPTH = 2


# ===== BOARD LIMITS =====
class BoardConfig:
    """Board size and search limits."""

    MIN_SIZE = 2
    MAX_SIZE = 50

    MAX_LOOKAHEAD_DEPTH = 3


# ===== BOT MANAGEMENT =====
class BotConfig:
    """Computer opponent configuration."""

    # Available difficulty levels
    DIFFICULTIES = ["easy", "medium", "hard"]

    BOT_NAME = {
        "easy": "RandomBot",
        "medium": "DistanceBot",
        "hard": "HeuristicBot"
    }

    # Hard bot weights; distance dominates, positional terms only break near-ties
    DISTANCE_WEIGHT = 10.0
    MOBILITY_WEIGHT = 1.0
    CORNER_WEIGHT = 2.0
    ADJACENCY_WEIGHT = 3.0
    CENTER_WEIGHT = 0.5
    EDGE_DENSITY_WEIGHT = 0.25


# ===== MODES =====
class ModeConfig:
    """Per-mode roles and win polarity."""

    MODES = ["offense", "defense", "twoPlayer"]

    # Role controlled by the human; None means both are human
    HUMAN_ROLES = {
        "offense": "pursuer",
        "defense": "evader",
        "twoPlayer": None
    }

    # What a separated board means: "escape" (evader wins) or "stalemate"
    SEPARATION_OUTCOMES = ["escape", "stalemate"]
    SEPARATION_OUTCOME = {
        "offense": "escape",
        "defense": "escape",
        "twoPlayer": "stalemate"
    }

    REMOVAL_POLICIES = ["uniform", "center"]
