USERS_COLLECTION = "users"
INTERACTIONS_SUBCOLLECTION = "interactions"
SUMMARY_SUBCOLLECTION = "interaction_summary"
SUMMARY_DOC_ID = "summary"
SETTINGS_SUBCOLLECTION = "settings"
PRIVACY_DOC_ID = "privacy"

MAX_WRITE_BATCH = 500  # hard cap on writes per batched commit
MAX_TRANSACTION_ATTEMPTS = 5

TMDB_BASE_URL = "https://api.themoviedb.org/3"

REDIS_NAMESPACE = "nettrailers:"
