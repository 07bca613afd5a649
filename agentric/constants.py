"""Shared defaults for agentric."""

ORCHESTRATOR_AGENT_ID = "workflow-orchestrator-001"
PROCESS_MANAGER_AGENT_ID = "process-manager-001"

SYSTEM_EVENTS_TOPIC = "system-events"

DEFAULT_STEP_TIMEOUT_MS = 30_000
DEFAULT_MAX_STEP_RETRIES = 1
# Used only for the rough "time remaining" figure in status reports.
AVERAGE_STEP_DURATION_MS = 15_000

DEFAULT_MAX_RESTARTS = 3
DEFAULT_RESTART_SETTLE_DELAY = 1.0
DEFAULT_DEGRADED_AFTER = 60.0
DEFAULT_UNRESPONSIVE_AFTER = 300.0
DEFAULT_FREQUENT_RESTART_RATIO = 0.7
DEFAULT_HEALTH_SWEEP_INTERVAL = 30.0
