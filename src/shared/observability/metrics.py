# Prometheus metrics for embedding, chunking and context fitting

from prometheus_client import Counter, Gauge, Histogram, generate_latest

# ===== Embedding provider metrics =====
embedding_request_total = Counter(
    "embedding_request_total",
    "Total remote embedding requests",
    ["model_id", "operation"],  # operation: documents, query, health
)

embedding_error_total = Counter(
    "embedding_error_total",
    "Total embedding errors",
    ["model_id", "error_type"],
)

embedding_latency_ms = Histogram(
    "embedding_latency_ms",
    "Embedding generation latency in milliseconds",
    ["model_id", "operation"],
    buckets=(10, 25, 50, 100, 250, 500, 1000, 2500, 5000),
)

embedding_retry_total = Counter(
    "embedding_retry_total",
    "Total retries of remote embedding calls",
    ["operation"],
)

embedding_batch_texts = Histogram(
    "embedding_batch_texts",
    "Texts per remote embedding call",
    ["model_id"],
    buckets=(1, 2, 5, 10, 20, 50, 100, 250),
)

# ===== Cache metrics =====
cache_operations_total = Counter(
    "cache_operations_total",
    "Total cache operations",
    ["operation", "layer", "result"],
)

cache_size_entries = Gauge(
    "cache_size_entries",
    "Current number of cache entries",
    ["layer"],
)

# ===== Chunking metrics =====
chunking_documents_total = Counter(
    "chunking_documents_total",
    "Documents processed by the chunker",
    ["strategy", "status"],
)

chunks_created_total = Counter(
    "chunks_created_total",
    "Chunks emitted by the chunker",
    ["strategy"],
)

chunk_size_chars = Histogram(
    "chunk_size_chars",
    "Chunk size in characters",
    ["strategy"],
    buckets=(100, 250, 500, 1000, 1500, 2000, 4000, 8000),
)

# ===== Context window metrics =====
context_fit_tokens_used = Histogram(
    "context_fit_tokens_used",
    "Estimated tokens consumed by fitted contexts",
    buckets=(0, 128, 256, 512, 1024, 2048, 4096, 8192, 16384),
)

context_fit_excluded_total = Counter(
    "context_fit_excluded_total",
    "Search results excluded from fitted contexts",
)


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus exposition format.

    Returns:
        Metrics as bytes
    """
    return generate_latest()
