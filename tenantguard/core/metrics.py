"""
Prometheus metrics for monitoring.

Metrics collected:
- HTTP request duration (histogram)
- HTTP request count by status code (counter)
- Active requests (gauge)
- Database statement duration and outcome (histogram, counter)
- Authorization decisions by check and outcome (counter)
- Tenant overrides by scope (counter)
- Plan-limit checks that failed open (counter)
- Audit delivery failures (counter)
"""

from prometheus_client import Counter, Gauge, Histogram, Info


# Application info
app_info = Info("tenantguard_app", "TenantGuard application information")

# HTTP metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests in progress",
    ["method", "endpoint"],
)

# Database metrics
db_query_duration_seconds = Histogram(
    "db_query_duration_seconds",
    "Database statement duration in seconds",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
)

db_queries_total = Counter(
    "db_queries_total",
    "Total database statements",
    ["operation", "status", "bound"],
)

db_transactions_total = Counter(
    "db_transactions_total",
    "Total executor transactions",
    ["outcome"],
)

# Authorization metrics
authz_decisions_total = Counter(
    "authz_decisions_total",
    "Authorization decisions",
    ["check", "outcome"],
)

tenant_overrides_total = Counter(
    "tenant_overrides_total",
    "Cross-tenant overrides granted to the top-level role",
    ["scope"],
)

plan_limit_fail_open_total = Counter(
    "plan_limit_fail_open_total",
    "Plan-limit checks allowed because usage could not be computed",
    ["limit_name"],
)

audit_delivery_failures_total = Counter(
    "audit_delivery_failures_total",
    "Audit events the sink failed to record",
    ["kind"],
)
