from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from apps.core.views import health
from apps.payouts.urls import admin_urlpatterns as payout_admin_urlpatterns

API_PREFIX = settings.API_PREFIX.strip("/")

urlpatterns = [
    path("admin/", admin.site.urls),
    path(f"{API_PREFIX}/health", health, name="health"),
    path(f"{API_PREFIX}/schema", SpectacularAPIView.as_view(), name="schema"),
    path(f"{API_PREFIX}/docs", SpectacularSwaggerView.as_view(url_name="schema"), name="docs"),
    path(f"{API_PREFIX}/admin/", include((payout_admin_urlpatterns, 'payouts'), namespace='admin-payouts')),
]
