"""Root URL configuration for the event_security project."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("checkin/", include("checkin.urls")),
    path("django-admin/", admin.site.urls),
]
