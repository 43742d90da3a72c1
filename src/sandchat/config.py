"""Configuration constants.

Centralizes magic numbers and fixed strings for the chat engine.
"""

# Request defaults
DEFAULT_TEMPERATURE = 0.5  # Used when the session parameters carry no temperature
DEFAULT_MAX_TOKENS = 32000
MAX_STEPS = 10  # Model/tool round trips per turn
MAX_RETRIES = 3  # Attempts to open a provider stream after the first failure
DEFAULT_REASONING_EFFORT = "low"
ANTHROPIC_MAX_TOKENS = 4096  # Anthropic requires max_tokens on every request

# Local inference server (LM Studio, OpenAI-compatible)
LOCAL_BASE_URL = "http://127.0.0.1:1234/v1"
LOCAL_API_KEY = "not_needed"

# Hosted OpenAI-compatible endpoints
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
MISTRAL_BASE_URL = "https://api.mistral.ai/v1"

# Reasoning delimiters emitted inline by some open models
THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

# Chat behaviour
EMPTY_INPUT_FALLBACK = "Describe content. Consider its context in the current conversation."
ATTACHMENT_DROPPED_WARNING = (
    "Due to current model limitations, some content was removed and context may be lost."
)

# Network search (RapidAPI hosts)
RAPIDAPI_CREDENTIAL = "RapidAPI"
WEB_SEARCH_HOST = "real-time-web-search.p.rapidapi.com"
DUCKDUCKGO_HOST = "duckduckgo8.p.rapidapi.com"
GOOGLE_SEARCH_HOST = "google-search-master.p.rapidapi.com"
SEARCH_TIMEOUT_SECONDS = 30.0
