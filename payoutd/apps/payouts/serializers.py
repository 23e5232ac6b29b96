from __future__ import annotations

from rest_framework import serializers


class BatchTriggerRequestSerializer(serializers.Serializer):
    delay = serializers.IntegerField(required=False, min_value=0, default=0)
    batchSize = serializers.IntegerField(required=False, min_value=1, max_value=500)


class BatchTriggerResponseSerializer(serializers.Serializer):
    jobId = serializers.CharField()
    delay = serializers.IntegerField()


class QueueCountsSerializer(serializers.Serializer):
    waiting = serializers.IntegerField()
    active = serializers.IntegerField()
    scheduled = serializers.IntegerField()
    completed = serializers.IntegerField()
    failed = serializers.IntegerField()


class QueueStatsResponseSerializer(serializers.Serializer):
    queues = serializers.DictField(child=QueueCountsSerializer())
