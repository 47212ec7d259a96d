"""
Constants for the Cinda runner profile core.

This module contains the enumerations, keyword pattern tables, bounds and
storage identifiers used throughout the package. Centralizing these makes the
extraction rules and validation limits easy to review and tune.
"""

from typing import Dict, List, Set, Tuple


# =============================================================================
# PROVENANCE
# =============================================================================

SOURCE_EXPLICIT = "explicit"    # Entered by the runner in the wizard
SOURCE_INFERRED = "inferred"    # Derived from free text

VALID_SOURCES: Set[str] = {SOURCE_EXPLICIT, SOURCE_INFERRED}

CONFIDENCE_LOW = "low"
CONFIDENCE_MEDIUM = "medium"
CONFIDENCE_HIGH = "high"

# Higher rank wins when an inferred update competes with existing data
CONFIDENCE_RANK: Dict[str, int] = {
    CONFIDENCE_LOW: 1,
    CONFIDENCE_MEDIUM: 2,
    CONFIDENCE_HIGH: 3,
}


# =============================================================================
# STEP 1 - BASICS
# =============================================================================

EXPERIENCE_BEGINNER = "beginner"
EXPERIENCE_INTERMEDIATE = "intermediate"
EXPERIENCE_ADVANCED = "advanced"
EXPERIENCE_RACING_FOCUSED = "racing_focused"

EXPERIENCE_LEVELS: Set[str] = {
    EXPERIENCE_BEGINNER,
    EXPERIENCE_INTERMEDIATE,
    EXPERIENCE_ADVANCED,
    EXPERIENCE_RACING_FOCUSED,
}

# Older builds used different labels for the same levels
EXPERIENCE_ALIASES: Dict[str, str] = {
    "experienced": EXPERIENCE_ADVANCED,
    "competitive": EXPERIENCE_RACING_FOCUSED,
    "racing": EXPERIENCE_RACING_FOCUSED,
}


# =============================================================================
# STEP 2 - GOALS
# =============================================================================

PRIMARY_GOALS: Set[str] = {
    "general_fitness",
    "get_faster",
    "race_training",
    "injury_comeback",
}

RUNNING_PATTERNS: Set[str] = {
    "structured_training",
    "mostly_easy",
    "infrequent",
}

TRAIL_RUNNING_OPTIONS: Set[str] = {
    "most_or_all",
    "infrequently",
    "want_to_start",
    "no_trails",
}

FOOT_STRIKES: Set[str] = {"forefoot", "midfoot", "heel", "unsure"}

VOLUME_UNIT_KM = "km"
VOLUME_UNIT_MI = "mi"

# Inclusive upper bounds for weekly volume
WEEKLY_VOLUME_LIMITS: Dict[str, int] = {
    VOLUME_UNIT_KM: 300,
    VOLUME_UNIT_MI: 186,
}

# Picker distance -> API distance
RACE_DISTANCE_MAP: Dict[str, str] = {
    "5k": "5k",
    "10k": "10k",
    "13.1mi": "half",
    "26.2mi": "marathon",
    "half": "half",
    "marathon": "marathon",
}

# Below these values (in minutes) a fractional stored time was really hours
LEGACY_HOURS_THRESHOLDS: Dict[str, int] = {
    "5k": 6,
    "10k": 10,
    "half": 30,
    "marathon": 60,
}
LEGACY_HOURS_DEFAULT_THRESHOLD = 10

CM_PER_INCH = 2.54
KG_PER_LB = 0.453592

HEIGHT_CM_RANGE: Tuple[int, int] = (50, 272)
WEIGHT_KG_RANGE: Tuple[float, float] = (20.0, 400.0)


# =============================================================================
# STEP 3 - ROTATION
# =============================================================================

ROLE_ALL_RUNS = "all_runs"

RUN_TYPES: List[str] = [
    ROLE_ALL_RUNS,
    "recovery",
    "long_runs",
    "workouts",
    "races",
    "trail",
]

RUN_TYPE_ALIASES: Dict[str, str] = {
    "all_my_runs": ROLE_ALL_RUNS,
    "easy_recovery": "recovery",
    "tempo": "workouts",
    "interval": "workouts",
}

SHOE_SENTIMENTS: Set[str] = {"love", "like", "neutral", "dislike"}
DEFAULT_SENTIMENT = "neutral"


# =============================================================================
# STEP 4 - MODE / DISCOVERY
# =============================================================================

MODE_DISCOVERY = "discovery"
MODE_ANALYSIS = "analysis"
MODE_GAP_DETECTION = "gap_detection"

WIZARD_MODES: Set[str] = {MODE_DISCOVERY, MODE_ANALYSIS}

ARCHETYPES: List[str] = [
    "daily_trainer",
    "recovery_shoe",
    "workout_shoe",
    "race_shoe",
    "trail_shoe",
    "not_sure",
]

MAX_SELECTED_ARCHETYPES = 2

PREFERENCE_CINDA_DECIDES = "cinda_decides"
PREFERENCE_USER_SET = "user_set"
PREFERENCE_WILDCARD = "wildcard"

PREFERENCE_MODES: Set[str] = {
    PREFERENCE_CINDA_DECIDES,
    PREFERENCE_USER_SET,
    PREFERENCE_WILDCARD,
}

SLIDER_DIMENSIONS: List[str] = [
    "cushion_amount",
    "stability_amount",
    "energy_return",
    "rocker",
    "ground_feel",
]

FEEL_VALUE_RANGE: Tuple[int, int] = (1, 5)

HEEL_DROP_OPTIONS: List[str] = ["0mm", "1-4mm", "5-8mm", "9-12mm", "13mm+"]

BRAND_MODES: Set[str] = {"all", "include", "exclude"}

GAP_TYPES: Set[str] = {"coverage", "performance", "recovery", "redundancy"}
GAP_SEVERITIES: Set[str] = {"low", "medium", "high"}


# =============================================================================
# PERSISTENCE
# =============================================================================

SCHEMA_VERSION = 1

STORAGE_KEY_PROFILE = "cindaProfile"
STORAGE_KEY_SHOES = "cindaShoes"
STORAGE_KEY_RECOMMENDATIONS = "cindaRecommendations"
STORAGE_KEY_GAP = "cindaGap"
STORAGE_KEY_SHOE_REQUESTS = "cindaShoeRequests"
STORAGE_KEY_CHAT_CONTEXT = "cindaChatContext"

# Written by older builds, still removed on "start over"
STORAGE_KEY_LEGACY_ANALYSIS = "cindaAnalysis"


# =============================================================================
# CHAT
# =============================================================================

CHAT_RETRY_MESSAGE = "Hmm, something went wrong. Try again?"
CHAT_FALLBACK_RESPONSE = "Thanks, I'll keep that in mind."

INVALID_REQUEST_MESSAGE = "Invalid request - please check your profile"
SERVER_ERROR_MESSAGE = "Something went wrong - please try again"


# =============================================================================
# SIGNAL EXTRACTION PATTERNS
# =============================================================================
# Each category maps to an ordered list of (value, confidence, patterns).
# Order matters: the first value with a matching pattern wins, regardless of
# where in the message the keyword appears.

CATEGORY_SHOE_PURPOSE = "shoe_purpose"
CATEGORY_FOOT_WIDTH = "foot_width_volume"
CATEGORY_STABILITY = "stability_need"
CATEGORY_EXPERIENCE = "experience_level"
CATEGORY_CUSHIONING = "cushioning_preference"

# Evaluation order of the positive pass
SIGNAL_CATEGORIES: List[str] = [
    CATEGORY_SHOE_PURPOSE,
    CATEGORY_FOOT_WIDTH,
    CATEGORY_STABILITY,
    CATEGORY_EXPERIENCE,
    CATEGORY_CUSHIONING,
]

SIGNAL_PATTERNS: Dict[str, List[Tuple[str, str, List[str]]]] = {
    CATEGORY_SHOE_PURPOSE: [
        ("race", CONFIDENCE_HIGH, [
            r'\brac(e|es|ing)\b',
            r'\bmarathon\b',
            r'\bhalf[\s-]*marathon\b',
            r'\bpb\b',
            r'\bpr\b',
            r'\bsuper\s*shoe',
        ]),
        ("trail", CONFIDENCE_HIGH, [
            r'\btrails?\b',
            r'\boff[\s-]*road\b',
            r'\bmountains?\b',
            r'\bultra\b',
        ]),
        ("tempo_workout", CONFIDENCE_MEDIUM, [
            r'\btempo\b',
            r'\bworkouts?\b',
            r'\bintervals?\b',
            r'\bspeed\s*(work|sessions?)\b',
            r'\btrack\b',
        ]),
        ("easy_recovery", CONFIDENCE_MEDIUM, [
            r'\beasy\s*(runs?|days?|pace)\b',
            r'\brecovery\b',
            r'\bslow\s*runs?\b',
        ]),
        ("daily_trainer", CONFIDENCE_MEDIUM, [
            r'\bdaily\b',
            r'\beveryday\b',
            r'\bevery\s*day\b',
            r'\ball[\s-]*rounder\b',
            r'\bworkhorse\b',
        ]),
    ],

    CATEGORY_FOOT_WIDTH: [
        ("wide", CONFIDENCE_HIGH, [
            r'\bwide\s*(feet|foot|fit|toe\s*box)\b',
            r'\b(extra|really|very)[\s-]*wide\b',
            r'\b(feet|foot)\s*(are|is)\s*(\w+\s*)?wide\b',
            r'\bbunions?\b',
        ]),
        ("narrow_low_volume", CONFIDENCE_HIGH, [
            r'\bnarrow\s*(feet|foot|heels?)\b',
            r'\blow[\s-]*volume\b',
            r'\bskinny\s*feet\b',
        ]),
        ("high_volume", CONFIDENCE_MEDIUM, [
            r'\bhigh[\s-]*volume\b',
            r'\bhigh\s*instep\b',
            r'\bthick\s*feet\b',
        ]),
        ("standard", CONFIDENCE_LOW, [
            r'\b(normal|average|standard)\s*(width|feet|foot)\b',
        ]),
    ],

    CATEGORY_STABILITY: [
        ("max_stability", CONFIDENCE_HIGH, [
            r'\bmax(imum)?\s*stability\b',
            r'\bsevere(ly)?\s*over[\s-]*pronat',
            r'\bmotion\s*control\b',
        ]),
        ("stability", CONFIDENCE_HIGH, [
            r'\bover[\s-]*pronat',
            r'\bflat\s*feet\b',
            r'\bfallen\s*arches\b',
            r'\bstability\s*shoes?\b',
        ]),
        ("mild_stability", CONFIDENCE_MEDIUM, [
            r'\bmild\s*(over[\s-]*pronation|stability)\b',
            r'\bbit\s*of\s*support\b',
            r'\bsome\s*support\b',
        ]),
        ("neutral", CONFIDENCE_MEDIUM, [
            r'\bneutral\b',
            r'\bhigh\s*arch(es)?\b',
            r'\bsupinat',
        ]),
    ],

    CATEGORY_EXPERIENCE: [
        ("beginner", CONFIDENCE_MEDIUM, [
            r'\bnew\s*to\s*running\b',
            r'\bbeginner\b',
            r'\bjust\s*(started|starting)\b',
            r'\bcouch\s*to\s*5k\b',
            r'\bc25k\b',
            r'\bnever\s*run\b',
        ]),
        ("returning", CONFIDENCE_MEDIUM, [
            r'\bcoming\s*back\b',
            r'\breturning\b',
            r'\bgetting\s*back\s*into\b',
            r'\bafter\s*(an?\s*)?(injury|break)\b',
        ]),
        ("advanced", CONFIDENCE_MEDIUM, [
            r'\bsub[\s-]*\d',
            r'\bboston\s*qualif',
            r'\bbq\b',
            r'\b(years|decades)\s*of\s*running\b',
            r'\bcompetitive\b',
        ]),
        ("intermediate", CONFIDENCE_LOW, [
            r'\bfew\s*years\b',
            r'\bcouple\s*(of\s*)?years\b',
            r'\bregular(ly)?\s*run',
        ]),
    ],

    CATEGORY_CUSHIONING: [
        ("soft_plush", CONFIDENCE_MEDIUM, [
            r'(?<!too )(?<!not )\b(soft|plush|cushy|pillowy)\b',
            r'\bmax(imum)?\s*cushion',
        ]),
        ("firm_responsive", CONFIDENCE_MEDIUM, [
            r'(?<!too )(?<!not )\bfirm(er)?\b',
            r'\bresponsive\b',
            r'\bground\s*feel\b',
        ]),
        ("balanced", CONFIDENCE_LOW, [
            r'\bbalanced\b',
            r'\bmiddle\s*ground\b',
        ]),
    ],
}

# Beginners without a stated purpose get a daily trainer
BEGINNER_DEFAULT_PURPOSE = "daily_trainer"


# =============================================================================
# NEGATIVE SIGNAL PATTERNS
# =============================================================================

# Brands recognised in brand-level dislikes
BRAND_LIST: List[str] = [
    "nike",
    "adidas",
    "hoka",
    "new balance",
    "mizuno",
    "salomon",
    "skechers",
    "puma",
    "asics",
    "brooks",
    "saucony",
]

NEGATIVE_VERBS: List[str] = [
    "hate",
    "hated",
    "dislike",
    "didnt like",
    "dont like",
    "not for me",
    "never again",
]

GENERAL_NEGATIVE_PHRASES: List[str] = [
    "dont like",
    "hate",
    "hated",
    "doesnt work",
    "never again",
]

GENERALISATION_CUES: List[str] = [
    "in general",
    "as a brand",
    "always",
    "every time",
    "often",
    "usually",
    "tend to",
    "generally",
    "never again",
    "doesnt work for me",
    "dont get on with",
    "just doesnt work",
    "any ",
    "all ",
]

# Severity 3 > 2 > 1, first matching tier wins
SEVERITY_PATTERNS: List[Tuple[int, List[str]]] = [
    (3, ["never again", "hate", "hated"]),
    (2, ["didnt like", "not for me"]),
]
DEFAULT_SEVERITY = 1

# Rejections of a shoe purpose ("I don't like racing")
PURPOSE_REJECTION_PATTERNS: Dict[str, List[str]] = {
    "race": [
        r'\b(dont|do\s*not|never)\s*(like|want|enjoy|care\s*about)\s*(to\s*)?rac(e|es|ing)\b',
        r'\bnot\s*(into|interested\s*in)\s*rac(e|es|ing)\b',
        r'\bhate\s*rac(e|es|ing)\b',
    ],
    "trail": [
        r'\b(dont|do\s*not|never)\s*(like|want|run|do)\s*(on\s*)?trails?\b',
        r'\bnot\s*(into|interested\s*in)\s*trails?\b',
        r'\bno\s*trails?\b',
    ],
    "tempo_workout": [
        r'\b(dont|do\s*not|never)\s*(like|want|do)\s*(speed\s*work|workouts?|intervals?|tempo)\b',
    ],
}

# Dislike reason tags. Any pattern matching tags the message.
REASON_TAG_PATTERNS: Dict[str, List[str]] = {
    "too_firm": [r'\btoo\s+firm\b'],
    "too_soft": [r'\btoo\s+soft\b'],
    "too_bouncy": [r'\btoo\s+bouncy\b', r'\btrampoline'],
    "too_mushy": [r'\bmushy\b'],
    "too_dead": [r'\bdead\b', r'\bno\s+pop\b'],
    "too_stiff": [r'\btoo\s+stiff\b'],
    "too_flexible": [r'\btoo\s+flexible\b', r'\bfloppy\b'],
    "too_unstable": [r'\bunstable\b', r'\bwobbly\b', r'\btippy\b'],
    "heel_slip": [r'\bheel\s+slip', r'\bheel\b.*\bslip', r'\bslip\w*\b.*\bheel\b'],
    "toe_box_too_narrow": [
        r'\btoe\s*box\b.*\b(narrow|cramped)\b',
        r'\b(narrow|cramped)\b.*\btoe\s*box\b',
    ],
    "midfoot_too_narrow": [r'\bmidfoot\b.*\bnarrow\b', r'\bnarrow\b.*\bmidfoot\b'],
    "arch_pressure": [r'\barch(es)?\b.*\b(pressure|pain)', r'\b(pressure|pain)\b.*\barch(es)?\b'],
    "blisters_hotspots": [r'\bblister', r'\bhotspot', r'\brubbed\b'],
    "runs_short": [r'\bruns\s+small\b', r'\btoo\s+small\b'],
    "runs_long": [r'\bruns\s+big\b', r'\btoo\s+big\b'],
}

# "not too soft" / "isnt overly bouncy" cancel the tag
NEGATABLE_REASON_WORDS: Dict[str, str] = {
    "too_firm": "firm",
    "too_soft": "soft",
    "too_bouncy": "bouncy",
}
NEGATION_TEMPLATE = r'\b(not|isnt|is\s+not)\s+(too\s+|overly\s+|that\s+)?{word}\b'
