"""Constants for booru synchronization."""

RESULTS_PER_PAGE = 50

FAVES_QUERY = "my:faves"
# Upvoted images that are not also faved; faves are synced separately.
LIKES_QUERY = "(my:upvotes, -my:faves)"

SVG_MIME_TYPE = "image/svg+xml"

# Locally computed hashes
HASH_STORE_VERSION = 1
HASH_MAX_AGE_SECONDS = 180 * 24 * 60 * 60
HASH_MAX_ENTRIES_PER_SERVICE = 100_000

# CSRF token reuse limits
TOKEN_MAX_USES = 500
TOKEN_MAX_AGE_SECONDS = 6 * 60 * 60

# Reverse search candidate scoring
SIMILARITY_WEIGHTS: dict[str, float] = {
    "mime_type": 2.0,
    "aspect_ratio": 4.0,
    "resolution": 1.0,
    "tags": 3.0,
}
RESOLUTION_SCALE = 1e-3
