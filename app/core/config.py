import os

from dotenv import load_dotenv

load_dotenv()

# Storage
GCS_BUCKET_NAME = os.getenv("GCS_BUCKET_NAME", "highlight-compilations")
GCS_BASE_PREFIX = os.getenv("GCS_BASE_PREFIX", "")  # objects sit at the bucket root by default
GCS_BUCKET_LOCATION = os.getenv("GCS_BUCKET_LOCATION", "US")
GCS_SIGNING_SA_EMAIL = os.getenv("GCS_SIGNING_SA_EMAIL")
SIGNED_URL_EXPIRY_MINUTES = int(os.getenv("SIGNED_URL_EXPIRY_MINUTES", "60"))

# Encoding
VIDEO_ENCODER = os.getenv("VIDEO_ENCODER", "ffmpeg")
FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = os.getenv("FFPROBE_BINARY", "ffprobe")
FFMPEG_PRESET = os.getenv("FFMPEG_PRESET", "ultrafast")
FFMPEG_CRF = int(os.getenv("FFMPEG_CRF", "23"))
# Every clip is normalized to this format so the concat step gets uniform inputs
OUTPUT_WIDTH = int(os.getenv("OUTPUT_WIDTH", "1280"))
OUTPUT_HEIGHT = int(os.getenv("OUTPUT_HEIGHT", "720"))
OUTPUT_FPS = int(os.getenv("OUTPUT_FPS", "30"))

# Jobs
MAX_CONCURRENT_JOBS = int(os.getenv("MAX_CONCURRENT_JOBS", "2"))
JOB_TIMEOUT_SECONDS = float(os.getenv("JOB_TIMEOUT_SECONDS", "600"))  # 10 minutes
JOB_RETENTION_SECONDS = float(os.getenv("JOB_RETENTION_SECONDS", "3600"))
UNKNOWN_JOB_POLICY = os.getenv("UNKNOWN_JOB_POLICY", "placeholder").lower()  # placeholder | not_found
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "60"))

# Service
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8080"))
