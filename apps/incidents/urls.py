"""
URL routing for incident and comment endpoints.
"""
from django.urls import path

from apps.incidents import views

app_name = 'incidents'

urlpatterns = [
    path('incidents/', views.IncidentListView.as_view(), name='incident-list'),
    path('incidents/stats', views.IncidentStatsView.as_view(), name='incident-stats'),
    path('incidents/<uuid:incident_id>', views.IncidentDetailView.as_view(), name='incident-detail'),
    path(
        'incidents/<uuid:incident_id>/comments',
        views.IncidentCommentsView.as_view(),
        name='incident-comments'
    ),
    path('comments/<uuid:comment_id>', views.CommentDetailView.as_view(), name='comment-detail'),
]
