from django.urls import path

from .views import AdminBatchTriggerView, AdminQueueStatsView

admin_urlpatterns = [
    path('payouts/batch/trigger', AdminBatchTriggerView.as_view(), name='admin-payouts-batch-trigger'),
    path('payouts/queue/stats', AdminQueueStatsView.as_view(), name='admin-payouts-queue-stats'),
]
