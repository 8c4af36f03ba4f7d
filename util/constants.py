class ExternalURIs:
    API = "/api"
    DESIGN = API + "/design"
    GENERATE_FRONTEND_ONLY = DESIGN + "/generateFrontendOnly"
    GENERATE_FULLSTACK = DESIGN + "/generate-frontend"
    UPLOAD_ASSETS = "/uploadAssets"
    HACKATHON = API + "/hackathon"
    HACKATHON_LIKE = HACKATHON + "/{post_id}/like"
    HACKATHON_POST = HACKATHON + "/{post_id}"
    SUBSCRIPTION_STATUS = API + "/subscriptions/status"
    USER_CREDITS = API + "/credits/getUserCredits"


# Statuses retried even though some sit outside the 5xx class.
RETRYABLE_STATUSES = frozenset({408, 502, 503, 504})

IDEMPOTENCY_HEADER = "Idempotency-Key"
