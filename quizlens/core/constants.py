"""Fixed pipeline constants. These are not runtime configurable."""

MIN_QUESTION_LENGTH = 10
SIMILARITY_THRESHOLD = 0.85
ANSWER_CACHE_CAPACITY = 10

PREFETCH_INTERVAL_MS = 2000
PREFETCH_FRESHNESS_MS = 3000
FRAME_WAIT_TIMEOUT_MS = 2000

MAX_OCR_CHARS = 600
MAX_ERROR_CHARS = 40

# Producer buffer pool size and downscale factor applied before OCR
MAX_IMAGES = 2
FRAME_SCALE = 0.5
BYTES_PER_PIXEL = 4

# Published answer texts
INITIAL_ANSWER = "Waiting..."
NO_QUESTION_FOUND = "No question found"
CAPTURE_FAILED = "Capture failed"
NO_ANSWER = "No answer"
API_KEY_MISSING = "Error: API Key missing"
ERROR_PREFIX = "Error: "
API_ERROR_PREFIX = "API error"

STATUS_SCANNING = "Scanning..."
STATUS_THINKING = "Thinking..."
