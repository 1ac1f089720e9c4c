from __future__ import annotations


# Configuration keys accepted by SourceParameters.from_options
CONF_BASE_URL = "base_url"
CONF_DATASET = "dataset"
CONF_API = "api"
CONF_KIND = "kind"
CONF_USER = "user"
CONF_GROUPS = "groups"
CONF_GRAYSCALE = "grayscale"
CONF_AUTH_SERVER = "auth_server"
CONF_AUTH_TOKEN = "auth_token"
CONF_READONLY = "readonly"
CONF_SCHEMA = "schema"
CONF_MAX_GATEWAY_RETRIES = "max_gateway_retries"
CONF_GATEWAY_RETRY_DELAY = "gateway_retry_delay"
CONF_TIMEOUT = "timeout"

# API versions. Anything outside FAMILY_B_APIS talks the flat v1 format.
API_TOPLEVEL = "clio_toplevel"
API_V1 = "v1"
FAMILY_B_APIS = frozenset({"v2", "v3", "test"})

# Annotation kinds with special handling
KIND_ATLAS = "Atlas"
KIND_NOTE = "Note"
KIND_NORMAL = "Normal"
KIND_PRESYN = "PreSyn"
KIND_POSTSYN = "PostSyn"

DEFAULT_KIND = KIND_NORMAL
DEFAULT_POINT_KIND = KIND_NOTE

# Auth realms
HUB_REALM = "neurohub"
TOKEN_REALM_PREFIX = "token:"

# HTTP policy
DEFAULT_MAX_GATEWAY_RETRIES = 5
DEFAULT_GATEWAY_RETRY_DELAY = 0.5
DEFAULT_TIMEOUT = 30.0
AUTH_FAILURE_STATUSES = frozenset({401, 403})
GATEWAY_TIMEOUT = 504

# Render hints
RENDERING_ATTRIBUTE_HIDDEN = -1
RENDERING_ATTRIBUTE_DEFAULT = 0
RENDERING_ATTRIBUTE_CHECKED = 1
RENDERING_ATTRIBUTE_FALSE_SPLIT = 2
RENDERING_ATTRIBUTE_FALSE_MERGE = 3
RENDERING_ATTRIBUTE_PRESYN = 4
RENDERING_ATTRIBUTE_POSTSYN = 5

BOOKMARK_FALSE_SPLIT = "False Split"
BOOKMARK_FALSE_MERGE = "False Merge"
BOOKMARK_OTHER = "Other"

SOURCE_DOWNLOADED_LAST = "downloaded:last"
