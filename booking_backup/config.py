import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

STORAGE_PROVIDER = os.getenv("STORAGE_PROVIDER", "S3").upper()
BUCKET_NAME = os.getenv("BUCKET_NAME") or os.getenv("AWS_S3_BUCKET")

AWS_REGION = os.getenv("AWS_REGION")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")

CF_R2_ACCOUNT_ID = os.getenv("CF_R2_ACCOUNT_ID")
CF_R2_ACCESS_KEY_ID = os.getenv("CF_R2_ACCESS_KEY_ID")
CF_R2_SECRET_ACCESS_KEY = os.getenv("CF_R2_SECRET_ACCESS_KEY")

STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "10"))
STORAGE_MAX_ATTEMPTS = int(os.getenv("STORAGE_MAX_ATTEMPTS", "3"))

# Create-only restores write with If-None-Match: * to guard against races
CONDITIONAL_WRITES = os.getenv("CONDITIONAL_WRITES", "true").lower() == "true"

EXPORT_CONCURRENCY = int(os.getenv("EXPORT_CONCURRENCY", "5"))

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

AUTH_EMAIL_HEADER = os.getenv("AUTH_EMAIL_HEADER", "X-Authenticated-Email")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS", "*")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",") if origin.strip()
]
