from django.urls import include, path

urlpatterns = [
    path("api/", include("conversions.urls")),
]
