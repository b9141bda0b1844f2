"""Application constants and defaults."""
from pathlib import Path

# API Configuration
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"
DEFAULT_SUMMARY_MODEL = "anthropic/claude-3.5-haiku"

# Directory Structure
DEFAULT_LOGS_DIR = Path(".storyintake/logs")
DEFAULT_STATE_FILE = Path("story.yaml")

# Retry behaviour of the transport layer (rate limits are never retried here)
DEFAULT_MAX_RETRIES = 2
RETRY_INITIAL_DELAY_MS = 1000
RETRY_MAX_DELAY_MS = 10000

# Progress summaries while streaming
DEFAULT_PROGRESS_INTERVAL_MS = 3000

# Generation Parameters
DEFAULT_TEMPERATURES = {
    'extraction': 0.2,   # Low for faithful extraction
    'repair': 0.0,       # Deterministic fixes
    'summary': 0.7,      # Playful progress lines
}

DEFAULT_MAX_TOKENS = {
    'extraction': 8000,
    'repair': 16000,
    'summary': 60,
}

# Instruction attached to every field of a partial-safe schema
OMIT_HINT = "Use null if unknown, omit if not applicable"
