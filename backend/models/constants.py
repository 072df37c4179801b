from __future__ import annotations

DEFAULT_CAPTION = "A jazz fusion piece with saxophone"
DEFAULT_DURATION_SECONDS = 30
MIN_DURATION_SECONDS = 1
MAX_DURATION_SECONDS = 600
DEFAULT_BATCH_SIZE = 1

INVALID_PAYLOAD_ERROR = (
    "Invalid payload. Expected { caption?: string, duration?: number "
    f"({MIN_DURATION_SECONDS}-{MAX_DURATION_SECONDS}), lyrics?: string, bpm?: number, key?: string, "
    "genre?: string, ... } or { enabled?: boolean, target_size?: number }"
)

DEFAULT_ACESTEP_API_URL = "http://localhost:8001"
RELEASE_TASK_PATH = "/release_task"
QUERY_RESULT_PATH = "/query_result"
HTTP_TIMEOUT_SECONDS = 30
DEFAULT_AUDIO_MIME_TYPE = "audio/mpeg"

TASK_STATUS_PROCESSING = 0
TASK_STATUS_SUCCEEDED = 1
TASK_STATUS_FAILED = 2

POLL_INTERVAL_SECONDS = 2.0
MAX_GENERATION_SECONDS = 300.0
AUTO_ADDER_INTERVAL_SECONDS = 2.0
DEFAULT_TARGET_SIZE = 3
MAX_TARGET_SIZE = 50
WORKER_WAIT_SECONDS = 0.1

DEFAULT_PROGRESS_TEXT = "Generating..."
NO_AUDIO_URL_ERROR = "no audio URL returned"
GENERATION_FAILED_ERROR = "generation failed"
GENERATION_TIMEOUT_ERROR = "generation timeout"
GENERATION_CANCELLED_ERROR = "generation cancelled"
UNKNOWN_ERROR = "unknown error"
