from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check),  # Health check endpoint

    # Authentication endpoints (register, login, refresh, me)
    path('api/auth/', include('accounts.urls')),

    # Driver profile and location fallback
    path('api/driver/', include('drivers.urls')),

    path('api/bookings/', include('bookings.urls')),
    path('api/wallets/', include('wallets.urls')),
]
