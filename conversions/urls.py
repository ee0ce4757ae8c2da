from django.urls import path
from .views import JobStatusView, PgnToGifView, RegisterJobView, StorageEventView

urlpatterns = [
    path("pgn2gif/", PgnToGifView.as_view(), name="pgn_to_gif"),
    path("jobs/<str:kind>/", RegisterJobView.as_view(), name="job_register"),
    path("jobs/<str:kind>/<str:job_id>/", JobStatusView.as_view(), name="job_status"),
    path("storage/events/", StorageEventView.as_view(), name="storage_events"),
]
