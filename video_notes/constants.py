from pathlib import Path
from typing import Final

# Models
GEMINI_2_5_FLASH: Final = "gemini-2.5-flash"
GEMINI_2_5_FLASH_LITE: Final = "gemini-2.5-flash-lite"
GEMINI_2_5_PRO: Final = "gemini-2.5-pro"
GEMINI_2_FLASH: Final = "gemini-2.0-flash"

AVAILABLE_MODELS: Final = (
    GEMINI_2_5_FLASH,
    GEMINI_2_5_FLASH_LITE,
    GEMINI_2_5_PRO,
    GEMINI_2_FLASH,
)

# Most capable first; the invoker walks this list in order.
DEFAULT_MODEL_HIERARCHY: Final = (
    GEMINI_2_5_FLASH,
    GEMINI_2_5_FLASH_LITE,
    GEMINI_2_FLASH,
)

# Capabilities advertised by Google Gemini models.
MODEL_CAPABILITIES = {
    GEMINI_2_5_FLASH: frozenset({"text", "image", "audio", "video"}),
    GEMINI_2_5_FLASH_LITE: frozenset({"text", "image", "audio", "video"}),
    GEMINI_2_5_PRO: frozenset({"text", "image", "audio", "video"}),
    GEMINI_2_FLASH: frozenset({"text", "image"}),
}

# Rate limits per minute (conservative defaults; override via config if needed)
RATE_LIMITS = {
    GEMINI_2_5_FLASH: 10,
    GEMINI_2_5_FLASH_LITE: 15,
    GEMINI_2_5_PRO: 5,
    GEMINI_2_FLASH: 15,
}
DEFAULT_RATE_LIMIT: Final = 10
RATE_LIMIT_WINDOW_SEC: Final = 60

MAX_OUTPUT_TOKENS = {
    GEMINI_2_5_FLASH: 16_384,
    GEMINI_2_5_FLASH_LITE: 8_000,
    GEMINI_2_5_PRO: 16_384,
    GEMINI_2_FLASH: 8_000,
}

# Pricing (USD per 1K tokens) used for reporting only.
DEFAULT_INPUT_PRICE_PER_1K: Final = 0.00015
DEFAULT_OUTPUT_PRICE_PER_1K: Final = 0.0006

# Chunking
LONG_VIDEO_THRESHOLD_SECONDS: Final = 40 * 60
CHUNK_WIDTH_SECONDS: Final = 20 * 60
DEFAULT_MAX_CONCURRENT_CHUNKS: Final = 1
DEFAULT_SEGMENT_SECONDS: Final = 30

# Mode selection heuristics
EDUCATIONAL_TAGS: Final = (
    "tutorial",
    "education",
    "learning",
    "course",
    "lesson",
    "guide",
    "how-to",
    "demo",
    "presentation",
)
VISUAL_KEYWORDS: Final = ("slides", "chart", "diagram")
HYBRID_MIN_DURATION_SECONDS: Final = 60
HYBRID_MAX_DURATION_SECONDS: Final = 3600

# Queue
DEFAULT_MAX_RETRIES: Final = 3
DEFAULT_DEQUEUE_DELAY_SECONDS: Final = 1.0
DEFAULT_QUEUE_WORKERS: Final = 1
# Terminal queue records kept for status and result lookups
DEFAULT_QUEUE_KEEP_FINISHED: Final = 100

# yt-dlp info dicts kept per process
INFO_CACHE_SIZE: Final = 16

# Transcript confidence by source
OFFICIAL_CAPTION_CONFIDENCE: Final = 0.95
GENERATED_TRANSCRIPT_CONFIDENCE: Final = 0.9

# Defaults
DEFAULT_TEMPLATE_ID: Final = "basic-summary"
ANALYSIS_TEMPLATE_IDS: Final = ("basic-summary", "study-notes")
TEMPLATES_DIR = Path("templates")
CACHE_DIR = Path(".cache")
