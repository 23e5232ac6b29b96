from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .queue import queue_manager
from .serializers import (
    BatchTriggerRequestSerializer,
    BatchTriggerResponseSerializer,
    QueueStatsResponseSerializer,
)

logger = logging.getLogger(__name__)


class AdminBatchTriggerView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(
        tags=["Admin Payouts"],
        request=BatchTriggerRequestSerializer,
        responses={202: BatchTriggerResponseSerializer},
    )
    def post(self, request):
        serializer = BatchTriggerRequestSerializer(data=request.data or {})
        serializer.is_valid(raise_exception=True)
        delay = serializer.validated_data.get('delay') or 0
        job = queue_manager.add_batch_processing_job(
            delay=delay,
            batch_size=serializer.validated_data.get('batchSize'),
        )
        if job is None:
            return Response({'detail': 'QUEUE_UNAVAILABLE'}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        logger.info(f"Batch job {job.id} triggered by user {request.user.pk}")
        return Response({'jobId': job.id, 'delay': delay}, status=status.HTTP_202_ACCEPTED)


class AdminQueueStatsView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(tags=["Admin Payouts"], responses={200: QueueStatsResponseSerializer})
    def get(self, request):
        return Response({'queues': queue_manager.get_queue_stats()})
