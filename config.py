import os

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Paths
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.getenv("ZAD_LOG_FILE", os.path.join(BASE_DIR, "launch.log"))

# Server
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# Platform REST backend
BACKEND_API_URL = os.getenv("ZAD_API_URL", "http://localhost:4000/api")
BACKEND_TIMEOUT = float(os.getenv("ZAD_API_TIMEOUT", "15.0"))
BEACON_TIMEOUT = 5.0        # best-effort submit while the page is closing

# Front-end routes the page shell navigates to
EXAMS_LIST_PATH = "/dashboard/exams"
COURSE_PATH_TEMPLATE = "/courses/{course_id}"

# Exam timer
TICK_INTERVAL = 1.0                 # seconds between ticks
WARNING_THRESHOLD_SECONDS = 300     # five-minute warning

# Browser sessions
SESSION_TTL = int(os.getenv("ZAD_SESSION_TTL", "3600"))
SESSION_CLEANUP_INTERVAL = 300
