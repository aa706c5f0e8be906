"""
Operations endpoints.

Mounted under /_health/ and /_metrics/ by ledger_backend/urls.py. Protect
them at network level (internal only) in production.
"""
from django.urls import path

from ops.health import LivenessView, ReadinessView, FullHealthView
from ops.metrics import MetricsView

urlpatterns = [
    # Kubernetes health checks
    path("live", LivenessView.as_view(), name="health-live"),
    path("ready", ReadinessView.as_view(), name="health-ready"),
    path("full", FullHealthView.as_view(), name="health-full"),
]

metrics_patterns = [
    path("", MetricsView.as_view(), name="metrics"),
]
