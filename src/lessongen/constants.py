import json
import os

from dotenv import load_dotenv

load_dotenv(os.getenv("ENV_FILE"), override=True)

# General
PRODUCT = os.getenv("PRODUCT", "lessongen")
ENV = os.getenv("ENV", "stg")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "false").lower() == "true"

# LLM
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_CALL_TIMEOUT_SECONDS = float(os.getenv("LLM_CALL_TIMEOUT_SECONDS", "60"))
RATE_LIMIT_MAX_RETRIES = int(os.getenv("RATE_LIMIT_MAX_RETRIES", "3"))
RATE_LIMIT_BASE_DELAY = float(os.getenv("RATE_LIMIT_BASE_DELAY", "1.0"))
RATE_LIMIT_MAX_DELAY = float(os.getenv("RATE_LIMIT_MAX_DELAY", "30.0"))
ENABLE_LANGFUSE = os.getenv("ENABLE_LANGFUSE", "false").lower() == "true"

# Pipeline
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "300"))
VOCAB_MAX_WORKERS = int(os.getenv("VOCAB_MAX_WORKERS", "4"))
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "2"))

# Per-step retry policy overrides, e.g.
# {"grammar": {"token_cap_schedule": [2500, 1500], "max_attempts": 3}}
RETRY_POLICY_OVERRIDES = json.loads(os.getenv("RETRY_POLICY_OVERRIDES", "{}"))
