"""
URL routing for authentication endpoints.
"""
from django.urls import path

from apps.rbac.views_auth import LoginView, LogoutView, MeView

app_name = 'auth'

urlpatterns = [
    path('login', LoginView.as_view(), name='login'),
    path('logout', LogoutView.as_view(), name='logout'),
    path('me', MeView.as_view(), name='me'),
]
