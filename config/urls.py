"""
URL configuration for the SecOps incident API.
"""
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    # API Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/swagger/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # Authentication endpoints
    path('api/auth/', include('apps.rbac.urls_auth')),

    # Incidents and comments
    path('api/', include('apps.incidents.urls')),

    # Health probes
    path('api/internal/', include('apps.core.urls')),
]
