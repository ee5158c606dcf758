from __future__ import annotations

# gh reads and mutations
GH_TIMEOUT_SECONDS = 60.0

# Idempotent gh read retry policy (mutations never retry)
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0

# Note generator round trip
NOTE_TIMEOUT_SECONDS = 60.0
