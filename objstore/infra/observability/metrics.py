from prometheus_client import Counter, Histogram

# operation labels are the fixed client method names, never keys or buckets
OPERATIONS = Counter(
    "objstore_operations_total",
    "Total object store operations",
    ["operation", "outcome"],
)

LATENCY = Histogram(
    "objstore_operation_duration_seconds",
    "Object store operation latency in seconds",
    ["operation"],
)

BYTES_TRANSFERRED = Counter(
    "objstore_bytes_transferred_total",
    "Bytes moved to or from the object store",
    ["direction"],
)
