"""
Authentication URLs
"""
from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from . import views

urlpatterns = [
    # JWT authentication (email + password)
    path('token/', views.EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # User profile
    path('me/', views.CurrentUserView.as_view(), name='current_user'),
    path('preferences/', views.UserPreferencesView.as_view(), name='user_preferences'),
]
