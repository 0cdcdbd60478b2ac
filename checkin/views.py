"""Operational endpoints for the check-in verifier."""

from __future__ import annotations

from django.contrib.admin.views.decorators import staff_member_required
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.http import require_GET

from . import monitoring


@require_GET
@staff_member_required
def health(request: HttpRequest) -> JsonResponse:
    """Return the camera and verifier health snapshot as JSON."""

    return JsonResponse(monitoring.get_health_snapshot())


@require_GET
@staff_member_required
def metrics(request: HttpRequest) -> HttpResponse:
    """Expose Prometheus metrics for the verifier."""

    payload = monitoring.export_metrics()
    return HttpResponse(payload, content_type=monitoring.prometheus_content_type())
