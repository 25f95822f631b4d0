"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Upload metrics
certificate_uploads = Counter(
    "bloodlink_uploads_total",
    "Total certificate uploads",
    ["outcome"],
)

# Ledger metrics
ledger_writes = Counter(
    "bloodlink_ledger_writes_total",
    "Total ledger write attempts",
    ["outcome"],  # confirmed, rejected, timeout, unavailable
)

ledger_write_duration = Histogram(
    "bloodlink_ledger_write_duration_seconds",
    "Time from submission to confirmation of a ledger write",
)

# Review metrics
certificate_decisions = Counter(
    "bloodlink_decisions_total",
    "Total reviewer decisions recorded",
    ["eligible"],
)

ledger_db_inconsistencies = Counter(
    "bloodlink_inconsistencies_total",
    "Ledger writes whose record store update failed",
)

# Verification metrics
verifications = Counter(
    "bloodlink_verifications_total",
    "Total public verifications",
    ["method", "verdict"],
)
