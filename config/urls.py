"""
URL configuration for Agricart project.
"""
from django.contrib import admin
from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse
from django.urls import path, include
from django.views.decorators.http import require_GET
from django.views.generic import RedirectView
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView, SpectacularRedocView

API_VERSION = '1.0.0'


def _check_database():
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")


def _check_cache():
    # Кэш хранит счётчики throttling входа
    cache.set('health_check', 'ok', timeout=10)
    if cache.get('health_check') != 'ok':
        raise RuntimeError('cache not working')


@require_GET
def health_check(request):
    """Health check для мониторинга и load balancer"""
    checks = {}
    healthy = True

    for name, check in (('database', _check_database), ('cache', _check_cache)):
        try:
            check()
            checks[name] = 'ok'
        except Exception as e:
            checks[name] = f'error: {e}'
            healthy = False

    return JsonResponse(
        {
            'status': 'healthy' if healthy else 'unhealthy',
            'service': 'Agricart API',
            'version': API_VERSION,
            'checks': checks,
        },
        status=200 if healthy else 503,
    )


@require_GET
def api_root(request):
    """Корневой endpoint API"""
    base_url = request.build_absolute_uri('/api/')
    return JsonResponse({
        'message': 'Agricart - кооперативный магазин',
        'version': API_VERSION,
        'documentation': {
            'swagger': f'{base_url}docs/',
            'redoc': f'{base_url}redoc/',
            'schema': f'{base_url}schema/',
        },
        'endpoints': {
            'auth': f'{base_url}auth/',
            'products': f'{base_url}products/',
            'stocks': f'{base_url}stocks/',
            'cart': f'{base_url}orders/cart/',
            'orders': f'{base_url}orders/orders/',
            'notifications': f'{base_url}notifications/',
        }
    })


urlpatterns = [
    path('health/', health_check, name='health-check'),
    path('admin/', admin.site.urls),

    path('api/', api_root, name='api-root'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),

    path('api/auth/', include('users.urls', namespace='auth')),
    # Каталог и партии: /api/products/, /api/stocks/
    path('api/', include('products.urls')),
    path('api/orders/', include('orders.urls')),
    path('api/notifications/', include('notifications.urls')),

    path('', RedirectView.as_view(url='/api/docs/', permanent=False), name='root-redirect'),
]

admin.site.site_header = 'Agricart - Администрирование'
admin.site.site_title = 'Agricart'
admin.site.index_title = 'Панель управления'
