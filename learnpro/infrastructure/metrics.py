from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# HTTP
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

# Cache
cache_hits_total = Counter('cache_hits_total', 'Total cache hits')
cache_misses_total = Counter('cache_misses_total', 'Total cache misses')

# Database
db_queries_total = Counter('db_queries_total', 'Total database queries')

# Workflow
enrollments_created_total = Counter('enrollments_created_total', 'Total enrollments created')
courses_completed_total = Counter('courses_completed_total', 'Total course completions')
certificates_issued_total = Counter('certificates_issued_total', 'Total certificates issued')
exam_attempts_total = Counter('exam_attempts_total', 'Total exam attempts', ['passed'])

# Integrations
emails_sent_total = Counter('emails_sent_total', 'Total emails sent', ['status'])
webhook_events_total = Counter('webhook_events_total', 'Total payment webhook events', ['event_type'])

def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
