from prometheus_client import Counter, Histogram, REGISTRY


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # Counters register under their base name without the _total suffix
        collectors = REGISTRY._names_to_collectors
        return collectors.get(name) or collectors[name.removesuffix("_total")]


REQUESTS_TOTAL = get_or_create_metric(
    "timebeacon_requests_total",
    "Total requests",
    Counter,
    labelnames=["endpoint", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "timebeacon_request_latency_seconds",
    "Request latency",
    Histogram,
    labelnames=["endpoint"],
)

ITEMS_IMPORTED_TOTAL = get_or_create_metric(
    "timebeacon_items_imported_total",
    "Activity items fetched from sources",
    Counter,
    labelnames=["source"],
)

ITEMS_FAILED_TOTAL = get_or_create_metric(
    "timebeacon_items_failed_total",
    "Activity items that failed processing",
    Counter,
    labelnames=["source", "reason"],
)

TIME_ENTRIES_CREATED_TOTAL = get_or_create_metric(
    "timebeacon_time_entries_created_total",
    "Time entries written by imports",
    Counter,
    labelnames=["source"],
)

MODEL_CALLS_TOTAL = get_or_create_metric(
    "timebeacon_model_calls_total",
    "Language model calls by prompt template and outcome",
    Counter,
    labelnames=["template", "outcome"],
)
