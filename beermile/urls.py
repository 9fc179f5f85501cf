from django.urls import path
from rest_framework.routers import DefaultRouter

from .api import BetViewSet, EventViewSet, LoginView, LogoutView, SignupView

router = DefaultRouter()
router.register(r'events', EventViewSet, basename='event')
router.register(r'bets', BetViewSet, basename='bet')

urlpatterns = [
    path('auth/signup/', SignupView.as_view(), name='signup'),
    path('auth/login/', LoginView.as_view(), name='login'),
    path('auth/logout/', LogoutView.as_view(), name='logout'),
] + router.urls
