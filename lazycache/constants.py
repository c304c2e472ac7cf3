"""
lazycache Global Constants

Centralized location for all library-wide constants.
"""

# Namespace marker prefixed to every canonical key. Shared caches populated by
# earlier deployments depend on this literal, do not change it.
NAMESPACE_MARKER = "lc"

# Separator used both to join key parts and to address registry paths
KEY_SEPARATOR = "."

# Default TTL for shared cache entries (one day)
DEFAULT_TTL_SECONDS = 86400

# Package version
APP_VERSION = "1.0.0"
