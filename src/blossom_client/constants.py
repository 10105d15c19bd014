"""Constants for blossom-client."""

# Nostr event kinds
AUTH_EVENT_KIND = 24242
SERVER_LIST_EVENT_KIND = 10063

# Endpoints
UPLOAD_PATH = "/upload"
MEDIA_PATH = "/media"
MIRROR_PATH = "/mirror"
LIST_PATH = "/list/"

# Request headers
SHA256_HEADER = "X-SHA-256"
CONTENT_LENGTH_HEADER = "X-Content-Length"
CONTENT_TYPE_HEADER = "X-Content-Type"
AUTHORIZATION_HEADER = "Authorization"
CASHU_HEADER = "X-Cashu"
REASON_HEADER = "X-Reason"

# Authorization scheme prefix
AUTH_SCHEME = "Nostr"

# Both protocol revisions are honored: 401 in older servers, 403 in newer
AUTH_CHALLENGE_STATUSES = frozenset({401, 403})
PAYMENT_CHALLENGE_STATUS = 402

# Default auth token lifetime (seconds)
DEFAULT_AUTH_EXPIRATION = 60 * 60

# Default timeout for mirror and fallback upload requests (seconds)
DEFAULT_MIRROR_TIMEOUT = 5.0

# Config
DEFAULT_CONFIG_FILE = "blossom.yaml"

# Version
CLIENT_VERSION = "0.1.0"
