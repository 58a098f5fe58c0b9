"""Prometheus metrics definitions"""

from prometheus_client import Counter, Histogram, Gauge


# Live update listener
listener_state = Gauge(
    'listener_state',
    'Listener state per source (0=disconnected, 1=subscribing, 2=active, 3=reconnecting)',
    labelnames=['source']
)

listener_reconnects = Counter(
    'listener_reconnects_total',
    'Number of transport failures that triggered a reconnect',
    labelnames=['source']
)

initial_load_time = Histogram(
    'initial_load_time_seconds',
    'Time to fetch and unify a full source snapshot',
    labelnames=['source'],
    buckets=[0.1, 0.5, 1, 2, 5, 15, 30]
)

# Working set
change_events_applied = Counter(
    'change_events_applied_total',
    'Change events applied to the working set',
    labelnames=['source', 'operation']
)

change_events_deduplicated = Counter(
    'change_events_deduplicated_total',
    'Change events dropped as duplicate or stale deliveries',
    labelnames=['source', 'reason']  # duplicate, stale, present
)

malformed_records = Counter(
    'malformed_records_total',
    'Raw records rejected by the unification adapter',
    labelnames=['source']
)

working_set_size = Gauge(
    'working_set_size',
    'Unified transactions held in memory',
    labelnames=['source']
)

# Reporting
report_computation_time = Histogram(
    'report_computation_time_seconds',
    'Filter and aggregation latency per report',
    labelnames=['report_type'],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1, 5]
)

reports_generated = Counter(
    'reports_generated_total',
    'Reports generated',
    labelnames=['report_type', 'partial']
)

stale_computations_discarded = Counter(
    'stale_computations_discarded_total',
    'Report computations discarded because a newer request superseded them'
)

invalid_filters_rejected = Counter(
    'invalid_filters_rejected_total',
    'Report requests rejected by criteria validation'
)
