from django.urls import path

from directory.views import PipelineStatusView

app_name = 'directory'

urlpatterns = [
    path('status/', PipelineStatusView.as_view(), name='pipeline-status'),
]
