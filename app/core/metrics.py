"""
Prometheus metrics (exposed on /metrics by app/main.py).
"""
from prometheus_client import Counter

ASSESSMENTS_SUBMITTED = Counter(
    "renewal_assessments_submitted_total",
    "Assessments accepted by intake",
    ["recommendation"],
)

INTAKE_REJECTIONS = Counter(
    "renewal_intake_rejections_total",
    "Submissions rejected by the intake validator",
    ["code"],
)

DECISION_TRANSITIONS = Counter(
    "renewal_decision_transitions_total",
    "Decision actions by outcome",
    ["action", "outcome"],
)

SUMMARY_GENERATIONS = Counter(
    "renewal_summary_generations_total",
    "Executive summary synthesis attempts by outcome",
    ["outcome"],
)

BACKGROUND_TASK_FAILURES = Counter(
    "renewal_background_task_failures_total",
    "Fire-and-forget tasks that raised",
    ["task"],
)
