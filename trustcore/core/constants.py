"""
TrustCore - Constants
=====================

Centralized thresholds, weights and limits for the trust-and-safety rules.
"""


# =============================================================================
# Messaging Abuse Limits
# =============================================================================

NEW_CONVERSATION_WINDOW_SECONDS = 3600  # 1 hour
NEW_CONVERSATION_LIMIT = 3  # distinct recipients per window for new users
LOW_REPUTATION_THRESHOLD = 10  # below this a non-expert counts as a new user

DUPLICATE_WINDOW_SECONDS = 120  # 2 minutes
DUPLICATE_LIMIT = 5  # identical sends per window, including the current one

GUEST_MESSAGE_REPUTATION = 50  # reputation needed to message restricted recipients


# =============================================================================
# Rejection Reasons (user-visible)
# =============================================================================

REASON_HONEYPOT = "Message failed to send."
REASON_BANNED = "Your messaging privileges have been suspended due to spam reports."
REASON_SUSPENDED = "Your messaging privileges are temporarily suspended."
REASON_NEW_CONVERSATIONS = (
    "Rate limit exceeded. You can only start 3 new conversations per hour as a new user."
)
REASON_DUPLICATE = "Message blocked. Automated behavior detected."
REASON_RECIPIENT_PREFERENCE = (
    "This user only accepts messages from verified experts or connections."
)
REASON_EMPTY_MESSAGE = "Message cannot be empty"
REASON_UNAVAILABLE = "Messaging is temporarily unavailable. Please try again later."


# =============================================================================
# Classifier
# =============================================================================

CLASSIFIER_PROFILES = ("general", "guest")
CLASSIFIER_TEMPERATURE = 0.3
CLASSIFIER_MAX_TOKENS = {"general": 100, "guest": 150}

REASON_NOT_CONFIGURED = "Moderation system not configured - content blocked for safety"
REASON_NO_RESPONSE = "Moderation API did not respond - content blocked for safety"
REASON_INVALID_RESPONSE = "Invalid moderation response - content blocked for safety"
REASON_UNPARSEABLE = "Failed to parse moderation response - content blocked for safety"
REASON_API_ERROR = "Moderation API error - content blocked for safety"
REASON_BLACKLIST_UNAVAILABLE = "Moderation blacklist unavailable - content blocked for safety"


# =============================================================================
# Content
# =============================================================================

CONTENT_KINDS = ("discussion", "comment", "review")
QUEUE_SOURCES = ("classifier", "reactions", "blacklist", "manual")
QUEUE_STATUSES = ("pending", "approved", "rejected")
QUEUE_DECISIONS = ("restore", "purge")

ADMIN_ACTIONS = (
    "restore",
    "purge",
    "ban",
    "unban",
    "blacklist-add",
    "blacklist-remove",
    "grant-expert",
    "revoke-expert",
    "reset-reputation",
    "clear-flags",
)


# =============================================================================
# Reactions
# =============================================================================

# kind -> (emoji, label)
REACTION_KINDS = {
    "scientific": ("🔬", "Scientific"),
    "experiential": ("💡", "Experiential"),
    "safety": ("⚠️", "Potential Concern"),
    "innovation": ("💎", "Innovation"),
    "reliability": ("✅", "Reliable"),
}

CONCERN_REACTION_KIND = "safety"
CONCERN_QUEUE_THRESHOLD = 3  # count must exceed this to enqueue


# =============================================================================
# Signal Escalation
# =============================================================================

TRENDING_THRESHOLD = 5
URGENT_THRESHOLD = 10
URGENT_NOTIFY_LIMIT = 10  # experts notified per crossing

URGENT_TITLE = "Urgent SME Request"
URGENT_MESSAGE = (
    "A community signal has reached critical mass (10+). Your expertise is requested."
)
URGENT_SEVERITY = "warning"
NOTIFICATION_SEVERITIES = ("info", "warning", "success")


# =============================================================================
# Reputation
# =============================================================================

CONTRIBUTION_WEIGHTS = {
    "discussion": 10,
    "comment": 5,
    "review": 20,
}

VERIFIED_EXPERT_BONUS = 500

# (threshold, tier, name), ascending
TIER_LADDER = (
    (0, 1, "Rooted Member"),
    (100, 2, "Creative Contributor"),
    (300, 3, "Trusted Voice"),
    (600, 4, "Heart of Community"),
    (1000, 5, "Insightful Guide"),
    (2000, 6, "Visionary Lead"),
    (5000, 7, "Unified Expert"),
)

SME_SCORE_THRESHOLD = 1000

# Seconds between batch recomputes over all active actors
REPUTATION_RECOMPUTE_INTERVAL = 6 * 60 * 60


# =============================================================================
# Display Truncation Lengths
# =============================================================================

LOG_MESSAGE_TRUNCATION_LENGTH = 100
REASON_TRUNCATION_LENGTH = 200
