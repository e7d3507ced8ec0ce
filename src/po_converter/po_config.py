"""
Purchase Order Converter Configuration
Loads environment variables (and a project-root .env file when present)
and provides defaults for storage, limits, logging and email delivery.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Project root (two levels up from this file: src/po_converter/po_config.py)
# ---------------------------------------------------------------------------
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent

env_file = PROJECT_ROOT / ".env"
if env_file.exists():
    load_dotenv(env_file)

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
STORAGE_DIR: str = os.getenv("PO_STORAGE_DIR", str(PROJECT_ROOT / "storage"))
UPLOADS_BUCKET: str = os.getenv("PO_UPLOADS_BUCKET", "uploads")
GENERATED_BUCKET: str = os.getenv("PO_GENERATED_BUCKET", "generated")
MAPPINGS_BUCKET: str = os.getenv("PO_MAPPINGS_BUCKET", "mappings")
BLOB_KEY_PREFIX: str = "files/"

# Optional template workbook reused when generating purchase orders
TEMPLATE_PATH: str = os.getenv(
    "PO_TEMPLATE_PATH",
    str(PROJECT_ROOT / "templates" / "purchase_order_template.xlsx"),
)

# ---------------------------------------------------------------------------
# Processing Limits
# ---------------------------------------------------------------------------
MAX_FILE_SIZE_MB: int = int(os.getenv("PO_MAX_FILE_SIZE_MB", "10"))
MAX_FILE_SIZE_BYTES: int = MAX_FILE_SIZE_MB * 1024 * 1024
PREVIEW_ROWS: int = int(os.getenv("PO_PREVIEW_ROWS", "20"))
ALLOWED_EXTENSIONS = {".csv", ".xlsx", ".xlsm"}

# Target schema variants accepted by the generate entry point
SUPPORTED_SCHEMAS = {"standard"}

# Raise instead of skipping when a mapping rule names a missing source column
STRICT_MAPPING: bool = os.getenv("PO_STRICT_MAPPING", "false").lower() == "true"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_DIR: str = os.getenv("PO_LOG_DIR", str(PROJECT_ROOT / "logs"))
LOG_LEVEL: str = os.getenv("PO_LOG_LEVEL", "INFO").upper()
LOG_MAX_MB: int = int(os.getenv("PO_LOG_MAX_MB", "10"))
LOG_BACKUP_COUNT: int = int(os.getenv("PO_LOG_BACKUP_COUNT", "5"))

# ---------------------------------------------------------------------------
# Email delivery
# ---------------------------------------------------------------------------
EMAIL_USER: str = os.getenv("EMAIL_USER", "")
EMAIL_PASS: str = os.getenv("EMAIL_PASS", "")
SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_TIMEOUT: int = int(os.getenv("SMTP_TIMEOUT", "30"))
EMAIL_FROM_FALLBACK: str = "noreply@localhost"

EMAIL_TEMPLATES_DIR: str = os.getenv(
    "PO_EMAIL_TEMPLATES_DIR",
    str(PROJECT_ROOT / "data" / "email_templates"),
)

DEFAULT_EMAIL_BODY: str = (
    "안녕하세요.\n\n"
    "발주서를 첨부파일로 보내드립니다.\n\n"
    "확인 후 회신 부탁드립니다.\n\n"
    "감사합니다."
)

# ---------------------------------------------------------------------------
# Email history
# ---------------------------------------------------------------------------
HISTORY_PATH: str = os.getenv(
    "PO_HISTORY_PATH",
    str(PROJECT_ROOT / "data" / "email_history.json"),
)
HISTORY_LIMIT: int = int(os.getenv("PO_HISTORY_LIMIT", "100"))
