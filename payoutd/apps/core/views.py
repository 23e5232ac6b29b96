from django.http import JsonResponse

from .redis_client import cache


def health(request):
    redis_ok = cache.is_healthy()
    status_code = 200 if redis_ok else 503
    return JsonResponse(
        {"status": "ok" if redis_ok else "degraded", "redis": "up" if redis_ok else "down"},
        status=status_code,
    )
