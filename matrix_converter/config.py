"""
Environment-driven configuration.

Values are read once at import time from the process environment (and an
optional ``.env`` file).  Nothing here is mutated at runtime.
"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# ─── Input limits ─────────────────────────────────────────────────────
MAX_IMAGE_SIZE_MB = int(os.getenv("MAX_IMAGE_SIZE_MB", "25"))
MAX_BATCH_ITEMS = int(os.getenv("MAX_BATCH_ITEMS", "10"))
MAX_IMAGE_DIMENSION = int(os.getenv("MAX_IMAGE_DIMENSION", "8192"))

# ─── Processing ───────────────────────────────────────────────────────
PREVIEW_DEBOUNCE_MS = int(os.getenv("PREVIEW_DEBOUNCE_MS", "100"))
BATCH_MAX_WORKERS = int(os.getenv("BATCH_MAX_WORKERS", "4"))
RANDOM_SEED = int(os.getenv("RANDOM_SEED", "42"))

# ─── Output ───────────────────────────────────────────────────────────
DEFAULT_OUTPUT_FORMAT = os.getenv("DEFAULT_OUTPUT_FORMAT", "png")
DEFAULT_QUALITY = int(os.getenv("DEFAULT_QUALITY", "92"))
BATCH_ARCHIVE_NAME = os.getenv("BATCH_ARCHIVE_NAME", "converted-images.zip")

# ─── API server ───────────────────────────────────────────────────────
API_SERVER_PORT = int(os.getenv("API_SERVER_PORT", "5002"))
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", str(MAX_IMAGE_SIZE_MB * MAX_BATCH_ITEMS)))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s'
LOG_DATEFMT = '%H:%M:%S'
