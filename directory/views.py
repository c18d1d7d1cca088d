"""
Pipeline observability endpoint.

GET /pipeline/status/?region=<slug> - JSON summary; all regions without ``region``
"""
import logging

from django.http import JsonResponse
from django.views import View

from directory.models import Region
from directory.pipeline_status import pipeline_status

logger = logging.getLogger(__name__)


class PipelineStatusView(View):

    def get(self, request):
        slug = request.GET.get('region')
        region = None
        if slug:
            region = Region.objects.filter(slug=slug).first()
            if region is None:
                return JsonResponse({"error": f"Unknown region: {slug}"}, status=404)

        return JsonResponse(pipeline_status(region))
