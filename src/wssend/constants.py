from __future__ import annotations

KIND_SEND = "send"

DJB2_SEED = 5381
DJB2_MASK = (1 << 64) - 1

FRAGMENT_SIZE = 32 * 1024
POLL_INTERVAL_S = 0.010  # drain loop
THROTTLE_INTERVAL_S = 0.010  # per fragment when throttling

MIB = 1024 * 1024

DEFAULT_OPEN_TIMEOUT_S = 10.0
DEFAULT_CLOSE_TIMEOUT_S = 5.0

# close code used when a fragmented send is abandoned half-way
CLOSE_INTERNAL_ERROR = 1011
CLOSE_ABNORMAL = 1006
