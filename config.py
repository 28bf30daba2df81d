import os
import platform

# Durable store keys. The session slot holds an encrypted token, the registry
# slot holds plain JSON.
SESSION_STORAGE_KEY = "wp_deploy_gen_secure_v1"
REGISTRY_STORAGE_KEY = "wp_deploy_gen_history"

HISTORY_LIMIT = 50
REGISTRY_LIMIT = 10

# Fixed application constant mixed into the envelope key.
APP_SECRET = "WP_DEPLOY_GEN_SECURE_"
ENVIRONMENT_ID = os.environ.get("WPDG_ENVIRONMENT_ID") or f"{platform.system()}/{platform.machine()} {platform.node()}"

GITHUB_API = os.environ.get("WPDG_GITHUB_API", "https://api.github.com").rstrip("/")
GITHUB_TOKEN = os.environ.get("WPDG_GITHUB_TOKEN")
# No timeout unless one is configured; a hung transport hangs only that call.
HTTP_TIMEOUT = float(os.environ["WPDG_HTTP_TIMEOUT"]) if os.environ.get("WPDG_HTTP_TIMEOUT") else None

# Repository size (in KB, as reported by the provider) above which a repo is "High" complexity.
HIGH_COMPLEXITY_SIZE = 50000

DEFAULT_SUMMARY = "Waiting for analysis..."
DEFAULT_THEME_PATH = "/public_html/wp-content/themes/"
DEFAULT_PLUGIN_PATH = "/public_html/wp-content/plugins/"
WP_CONTENT_SEGMENT = "wp-content"

STORE_PATH = os.environ.get("WPDG_STORE_PATH") or os.path.join(os.path.dirname(__file__), ".sandbox", "store.json")
STORE_QUOTA_BYTES = int(os.environ["WPDG_STORE_QUOTA_BYTES"]) if os.environ.get("WPDG_STORE_QUOTA_BYTES") else None
# Directory the session log CSV exports are written to.
LOG_EXPORT_DIR = os.environ.get("WPDG_LOG_EXPORT_DIR") or os.path.join(os.path.dirname(__file__), ".sandbox", "exports")

# Server configuration
SERVER_PORT = int(os.environ.get("WPDG_SERVER_PORT", "5001"))
DEBUG_MODE = os.environ.get("WPDG_DEBUG", "").lower() in ("1", "true", "yes")
LOG_LEVEL = os.environ.get("WPDG_LOG_LEVEL", "INFO").upper()

# Root-level calls kept by the tracer before the oldest are dropped.
TRACE_MAX_ENTRIES = 500
