"""Shared constants for the Agent Foundry pipeline."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Phase names (1-based order is significant)
# ---------------------------------------------------------------------------
PHASE_INPUT_ANALYSIS = "phase1_input_analysis"
PHASE_ROUTE_SELECTION = "phase2_route_selection"
PHASE_PROMPT_PREP = "phase3_prompt_prep"
PHASE_DELEGATION = "phase4_delegation"
PHASE_BUILD = "phase5_build"
PHASE_DEPLOY = "phase6_deploy"

STATE_SUCCEEDED = "succeeded"
STATE_FAILED = "failed"
STATE_ABORTED = "aborted"

ALL_PHASES = [
    PHASE_INPUT_ANALYSIS,
    PHASE_ROUTE_SELECTION,
    PHASE_PROMPT_PREP,
    PHASE_DELEGATION,
    PHASE_BUILD,
    PHASE_DEPLOY,
]

TERMINAL_STATES = (STATE_SUCCEEDED, STATE_FAILED, STATE_ABORTED)

PHASE_NUMBERS: dict[str, int] = {name: idx for idx, name in enumerate(ALL_PHASES, start=1)}

PHASE_TITLES: dict[str, str] = {
    PHASE_INPUT_ANALYSIS: "Input Analysis",
    PHASE_ROUTE_SELECTION: "Route Selection",
    PHASE_PROMPT_PREP: "Prompt Preparation",
    PHASE_DELEGATION: "Delegation",
    PHASE_BUILD: "Build",
    PHASE_DEPLOY: "Deploy",
}

# ---------------------------------------------------------------------------
# Worker timeouts (seconds)
# ---------------------------------------------------------------------------
DEFAULT_WEB_RESEARCH_TIMEOUT = 2400  # 40 minutes
DEFAULT_REPO_ANALYSIS_TIMEOUT = 900  # 15 minutes
DEFAULT_BUILD_TIMEOUT = 1800  # 30 minutes

# ---------------------------------------------------------------------------
# Policy defaults
# ---------------------------------------------------------------------------
DEFAULT_OVERLAP_THRESHOLD = 0.70
DEFAULT_MIN_SPECIFICITY_SCORE = 30.0
DEFAULT_MIN_DECISION_FRAMEWORKS = 5
DEFAULT_PROBE_RETRY_BACKOFF = 2.0

# Target names: lowercase, hyphenated, 3-50 characters.
TARGET_NAME_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
TARGET_NAME_MIN_LENGTH = 3
TARGET_NAME_MAX_LENGTH = 50

# ---------------------------------------------------------------------------
# Synthesis artifact categories (wire names)
# ---------------------------------------------------------------------------
CATEGORY_CORE_KNOWLEDGE = "core_knowledge"
CATEGORY_DECISION_FRAMEWORKS = "decision_frameworks"
CATEGORY_ANTI_PATTERNS = "anti_patterns"
CATEGORY_TOOL_MAP = "tool_map"
CATEGORY_INTERACTION_SCRIPTS = "interaction_scripts"

ARTIFACT_CATEGORIES = [
    CATEGORY_CORE_KNOWLEDGE,
    CATEGORY_DECISION_FRAMEWORKS,
    CATEGORY_ANTI_PATTERNS,
    CATEGORY_TOOL_MAP,
    CATEGORY_INTERACTION_SCRIPTS,
]

GAP_MARKER = "GAP"

# ---------------------------------------------------------------------------
# State persistence
# ---------------------------------------------------------------------------
STATE_DIR = ".agent-foundry"
RUNS_DIR = "runs"
STATE_FILE = "RUN_STATE.json"
REPORT_MD_FILE = "COMPLETION_REPORT.md"
REPORT_JSON_FILE = "COMPLETION_REPORT.json"
ARCHIVE_DB_FILE = "archive.db"
REGISTRY_FILE = "registry.json"
