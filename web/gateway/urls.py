from django.urls import include, path

urlpatterns = [
    path("api/", include("apps.registrations.urls")),
    path("api/", include("apps.monitoring.urls")),
]
