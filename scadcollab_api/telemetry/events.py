"""
Telemetry Event Names

Centralized event names following {domain}_{entity}_{action}.
"""


class TelemetryEvents:
    """Centralized telemetry event names."""

    # Request lifecycle
    REQUEST_RECEIVED = "request_received"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_FAILED = "request_failed"

    # Session document
    SESSION_CREATED = "session_created"
    SESSION_UPDATED = "session_updated"
    SESSION_DELETED = "session_deleted"
    SESSION_MESSAGE_APPENDED = "session_message_appended"
    SESSION_SHARED = "session_shared"
    SHARE_TOKEN_MINTED = "share_token_minted"

    # Presence
    COLLABORATOR_JOINED = "collaborator_joined"
    COLLABORATOR_LEFT = "collaborator_left"
    COLLABORATOR_PRUNED = "collaborator_pruned"

    # Team chat
    COMMENT_POSTED = "comment_posted"

    # Generation pipeline
    GENERATION_STARTED = "generation_started"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_FAILED = "generation_failed"
    PROVIDER_REQUEST_FAILED = "provider_request_failed"
    SYNTAX_CHECK_FAILED = "syntax_check_failed"
    RENDER_ATTEMPT_FAILED = "render_attempt_failed"
    RENDER_ABANDONED = "render_abandoned"
    SKETCH_GENERATED = "sketch_generated"

    # Store
    STORE_UNAVAILABLE = "store_unavailable"
    STORE_WRITE_FAILED = "store_write_failed"

    # Application lifecycle
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"
