"""
Constants for Browser Fetch Proxy.
All hardcoded values should be defined here.
"""

# ============================================================
# APPLICATION CONFIGURATION
# ============================================================

# Set to True for detailed logging, False for minimal logging
DEBUG = True

# Port to run the server on
PORT = 7860

# Default config file path
CONFIG_FILE = "config.json"

# ============================================================
# HTTP STATUS CODES
# ============================================================

class HTTPStatus:
    """HTTP Status Codes"""
    # 2xx Success
    OK = 200
    CREATED = 201
    NO_CONTENT = 204

    # 3xx Redirection
    MOVED_PERMANENTLY = 301
    MOVED_TEMPORARILY = 302
    NOT_MODIFIED = 304

    # 4xx Client Errors
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    TOO_MANY_REQUESTS = 429

    # 5xx Server Errors
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504


# Status code descriptions for logging
STATUS_MESSAGES = {
    200: "OK - Success",
    201: "Created",
    204: "No Content",
    206: "Partial Content",
    301: "Moved Permanently",
    302: "Moved Temporarily",
    304: "Not Modified",
    307: "Temporary Redirect",
    308: "Permanent Redirect",
    400: "Bad Request - Invalid request syntax",
    401: "Unauthorized - Invalid or expired token",
    403: "Forbidden - Access denied",
    404: "Not Found - Resource doesn't exist",
    405: "Method Not Allowed",
    408: "Request Timeout",
    413: "Request Too Long - Payload too large",
    429: "Too Many Requests - Rate limit exceeded",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}

# ============================================================
# INBOUND SURFACE
# ============================================================

TARGET_URL_QUERY_PARAM = "url"
MISSING_URL_MESSAGE = "Missing url parameter"
RELAY_FAILURE_PREFIX = "Request failed"
HEALTH_PATH = "/_proxy/health"

# Methods that never carry a request body to the origin
BODYLESS_METHODS = {"GET", "HEAD"}

# ============================================================
# REQUEST HEADER FILTERING
# ============================================================

# Exact (lowercased) request header names that are never forwarded into the browser.
FORBIDDEN_REQUEST_HEADERS = frozenset({
    # transport framing
    "connection",
    "content-length",
    "transfer-encoding",
    "upgrade",
    "trailer",
    "te",
    # hop-by-hop identity
    "host",
    "via",
    "date",
    "dnt",
    "expect",
    "keep-alive",
    # origin revealing
    "origin",
    "referer",
    "cookie",
    "cookie2",
    # refused by browser request transports
    "accept-charset",
    "accept-encoding",
    "access-control-request-headers",
    "access-control-request-method",
    # proxy chain / edge
    "forwarded",
    "x-real-ip",
    "x-direct-url",
    "cdn-loop",
    "true-client-ip",
})

# Any request header whose lowercased name starts with one of these is dropped.
FORBIDDEN_REQUEST_HEADER_PREFIXES = ("sec-", "proxy-", "x-forwarded-", "cf-")

# Response headers that describe the origin's wire framing. The execution context
# has already decoded the body, so forwarding them breaks the client's decoder.
STRIPPED_RESPONSE_HEADERS = frozenset({
    "content-encoding",
    "content-length",
    "transfer-encoding",
    "connection",
    "keep-alive",
})

# ============================================================
# REQUEST CLASSIFICATION
# ============================================================

STREAM_ACCEPT_MARKERS = ("text/event-stream", "application/stream")
STREAM_URL_MARKERS = ("/stream", "chat/completions", "v1/completions", "generate", "streaming")
JSON_CONTENT_TYPE_MARKER = "application/json"
JSON_STREAM_URL_MARKER = "stream"

# ============================================================
# BROWSER SETTINGS
# ============================================================

# Supported engines
BROWSER_ENGINE_CHROMIUM = "chromium"
BROWSER_ENGINE_CAMOUFOX = "camoufox"
VALID_BROWSER_ENGINES = {BROWSER_ENGINE_CHROMIUM, BROWSER_ENGINE_CAMOUFOX}
DEFAULT_BROWSER_ENGINE = BROWSER_ENGINE_CHROMIUM

CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

# Where a fresh page is parked before the in-page request runs
PAGE_BOOTSTRAP_BLANK = "blank"
PAGE_BOOTSTRAP_ORIGIN = "origin"
VALID_PAGE_BOOTSTRAP_MODES = {PAGE_BOOTSTRAP_BLANK, PAGE_BOOTSTRAP_ORIGIN}
BLANK_PAGE_URL = "about:blank"

# Fixed outbound user agent presented by every browser context
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# ============================================================
# TIMEOUTS AND LIMITS
# ============================================================

DEFAULT_NAVIGATION_TIMEOUT_SECONDS = 60
DEFAULT_REQUEST_TIMEOUT_SECONDS = 120
DEFAULT_STREAM_TIMEOUT_SECONDS = 600
DEFAULT_ENGINE_LAUNCH_TIMEOUT_SECONDS = 90
DEFAULT_CREDENTIAL_TIMEOUT_SECONDS = 30

# 0 means one page per request with no upper bound
DEFAULT_MAX_CONCURRENT_PAGES = 0

# Teardown of pages/engine never waits longer than this
TEARDOWN_TIMEOUT_SECONDS = 10.0

# ============================================================
# CREDENTIAL FLOW (GENSPARK)
# ============================================================

GENSPARK_PATH = "/genspark"
GENSPARK_URL = "https://www.genspark.ai/agents?type=moa_chat"
GENSPARK_COOKIE_DOMAIN = ".genspark.ai"
GENSPARK_RECAPTCHA_ACTION = "copilot"
GENSPARK_RECAPTCHA_RENDER_PATTERNS = [
    r'recaptcha/(?:enterprise|api)\.js\?render=(?P<sitekey>[0-9A-Za-z_-]{8,200})',
    r'(?:enterprise|api)\.js\?render=(?P<sitekey>[0-9A-Za-z_-]{8,200})',
]

# ============================================================
# CONTENT TYPES
# ============================================================

CONTENT_TYPE_TEXT_PLAIN_UTF8 = "text/plain; charset=utf-8"
