"""
URL configuration for the directory enrichment pipeline.

Only read-only operational endpoints are served: health checks and the
pipeline status summary.
"""

from django.contrib import admin
from django.urls import path, include

from core.views_health import HealthCheckView, ReadinessCheckView

urlpatterns = [
    path("admin/", admin.site.urls),

    # Health checks
    path("health/", HealthCheckView.as_view(), name="health"),
    path("health/ready/", ReadinessCheckView.as_view(), name="health-ready"),

    # Pipeline observability
    path("pipeline/", include("directory.urls")),
]
