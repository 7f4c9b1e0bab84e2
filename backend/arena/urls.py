from django.contrib import admin
from django.urls import path, include


urlpatterns = [
    path('admin/', admin.site.urls),

    path('api/crash/', include('crash.urls')),
    path('api/wallet/', include('wallets.urls')),
]
