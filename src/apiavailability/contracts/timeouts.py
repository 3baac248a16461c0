"""
Timeout, retry and cadence constants for apiavailability.

Centralizes policy values so they can be tuned in one place. Every value
here is a default; the runtime values come from AvailabilityConfig.
"""

from __future__ import annotations

# =============================================================================
# OTel Provider Timeouts
# =============================================================================

# Timeout for force_flush operations on the MeterProvider
OTEL_FLUSH_TIMEOUT_MS = 5000

# Timeout for checking if OTLP endpoint is reachable
OTEL_ENDPOINT_CHECK_TIMEOUT_S = 2.0

# Default OTLP gRPC port
OTEL_DEFAULT_GRPC_PORT = 4317

# Default OTLP HTTP/protobuf port
OTEL_DEFAULT_HTTP_PORT = 4318

# Default metric export interval
OTEL_METRICS_EXPORT_INTERVAL_MS = 60000

# =============================================================================
# Discovery Probe
# =============================================================================

# Per-request timeout for the discovery health check
DISCOVERY_PROBE_TIMEOUT_S = 0.5

# Concurrent attempts per probe; one success is enough
DISCOVERY_PROBE_ATTEMPTS = 5

# Multiplier applied to the request timeout to get the overall probe deadline
DISCOVERY_PROBE_DEADLINE_FACTOR = 2.0

# How often a waiting probe re-checks the cancellation signal
DISCOVERY_PROBE_CANCEL_POLL_S = 0.05

# Condition messages longer than this are truncated
MAX_CONDITION_MESSAGE_LENGTH = 1024

# =============================================================================
# Work Queue
# =============================================================================

# Backoff floor for a failing item
QUEUE_BACKOFF_BASE_DELAY_S = 0.005

# Backoff ceiling for a failing item
QUEUE_BACKOFF_MAX_DELAY_S = 30.0

# =============================================================================
# Controller
# =============================================================================

# Interval at which every known APIService is re-enqueued
RESYNC_INTERVAL_S = 30.0

# Number of worker threads pulling from the queue
DEFAULT_WORKERS = 5

# How long shutdown waits for each worker thread to exit
WORKER_JOIN_TIMEOUT_S = 5.0

# =============================================================================
# Kubernetes API Timeouts
# =============================================================================

# Read timeout for K8s API calls
K8S_API_REQUEST_TIMEOUT_S = 5

# Server-side timeout for a single watch request before it is re-established
K8S_WATCH_TIMEOUT_S = 300

# Pause before re-listing after a failed list or watch
K8S_WATCH_RETRY_DELAY_S = 1.0

# How long the CLI waits for the initial list of every kind
K8S_INITIAL_SYNC_TIMEOUT_S = 60.0
