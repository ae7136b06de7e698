APP_NAME = "Flowise Relay"
APP_VERSION = "1.0.0"
# Overridable with comma-separated CORS_ALLOW_ORIGINS / TRUSTED_HOSTS.
DEFAULT_CORS_ALLOW_ORIGINS = ["*"]
DEFAULT_TRUSTED_HOSTS = ["*"]

MESSAGE_MAX_CHARS = 10000
PREDICTION_PATH = "/api/v1/prediction/"
BODY_EXCERPT_CHARS = 500

DEFAULT_UPSTREAM_TIMEOUT_S = 120.0
DEFAULT_CHAT_ACTIVITY_DELAY_MS = 100
DEFAULT_RESEARCH_ACTIVITY_DELAY_MS = 600

SSE_HEADERS = {
	"Cache-Control": "no-cache",
	"Connection": "keep-alive",
	"X-Accel-Buffering": "no",
}
