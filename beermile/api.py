"""REST API views for the Beer Mile planner."""

from __future__ import annotations

import logging

from django.contrib.auth import authenticate, get_user_model, login, logout
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services, utils
from .exceptions import AuthenticationRequired, ValidationError
from .models import Event
from .serializers import (
    AvailabilityUpdateSerializer,
    BetInputSerializer,
    BetSerializer,
    EventSerializer,
    FinalizeSerializer,
    LockDateSerializer,
    LoginSerializer,
    ResetSerializer,
    ResultsSerializer,
    ScoringPreviewSerializer,
    SignupSerializer,
)

logger = logging.getLogger(__name__)


class IsAdminRole(permissions.BasePermission):
    message = "Only admins can perform this action."

    def has_permission(self, request, view):
        return bool(request.user and getattr(request.user, "is_admin", False))


ADMIN_ONLY = [permissions.IsAuthenticated, IsAdminRole]


def _user_payload(user) -> dict[str, object]:
    return {"id": user.pk, "username": user.username, "email": user.email, "role": user.role}


class EventViewSet(viewsets.GenericViewSet):
    queryset = Event.objects.all()
    serializer_class = EventSerializer
    lookup_value_regex = r"\d+"
    permission_classes = [permissions.IsAuthenticated]

    def get_serializer_class(self):  # type: ignore[override]
        return {
            "availability": AvailabilityUpdateSerializer,
            "bets": BetInputSerializer,
            "lock": LockDateSerializer,
            "results": ResultsSerializer,
            "finalize": FinalizeSerializer,
            "reset": ResetSerializer,
        }.get(self.action, super().get_serializer_class())

    def retrieve(self, request, pk=None):
        return Response(EventSerializer(self.get_object()).data)

    @action(detail=False, methods=["get"])
    def current(self, request):
        return Response(EventSerializer(services.current_event()).data)

    @action(detail=True, methods=["get", "post"])
    def availability(self, request, pk=None):
        event = self.get_object()
        if request.method == "GET":
            try:
                year, month = utils.parse_month(request.query_params.get("month"))
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            return Response(services.availability_for_month(event, request.user, year, month))

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        updates = serializer.validated_data["updates"]
        count = services.update_availability(event.pk, request.user, updates)
        return Response({"updated": count})

    @action(detail=True, methods=["get", "post"])
    def bets(self, request, pk=None):
        event = self.get_object()
        if request.method == "GET":
            my_bets = services.bets_for_user(event, request.user).select_related("user")
            return Response(
                {
                    "my_bets": BetSerializer(my_bets, many=True).data,
                    "distribution": services.bet_distribution(event),
                }
            )

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        bet = services.place_bet(event.pk, request.user, serializer.validated_data)
        return Response(BetSerializer(bet).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def leaderboard(self, request, pk=None):
        event = self.get_object()
        return Response(
            {
                "event": EventSerializer(event).data,
                "entries": services.leaderboard_for_event(event),
            }
        )

    @action(detail=True, methods=["post"], permission_classes=ADMIN_ONLY)
    def lock(self, request, pk=None):
        event = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        event = services.lock_event(event.pk, serializer.validated_data["scheduled_date"], request.user)
        return Response(EventSerializer(event).data)

    @action(detail=True, methods=["post"], permission_classes=ADMIN_ONLY)
    def unlock(self, request, pk=None):
        event = services.unlock_event(self.get_object().pk, request.user)
        return Response(EventSerializer(event).data)

    @action(detail=True, methods=["post"], permission_classes=ADMIN_ONLY)
    def results(self, request, pk=None):
        event = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        preview = services.enter_results(
            event.pk,
            serializer.validated_data["final_time_seconds"],
            serializer.validated_data["vomit_outcome"],
            request.user,
        )
        return Response({"preview": ScoringPreviewSerializer(preview).data})

    @action(detail=True, methods=["post"], permission_classes=ADMIN_ONLY)
    def finalize(self, request, pk=None):
        event = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        event = services.finalize_results(
            event.pk,
            request.user,
            confirm=serializer.validated_data["confirm"],
        )
        return Response(
            {
                "event": EventSerializer(event).data,
                "entries": services.leaderboard_for_event(event),
            }
        )

    @action(detail=True, methods=["post"], permission_classes=ADMIN_ONLY)
    def reset(self, request, pk=None):
        event = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        event = services.reset_results(event.pk, serializer.validated_data["reason"], request.user)
        return Response(EventSerializer(event).data)


class BetViewSet(viewsets.GenericViewSet):
    serializer_class = BetSerializer
    lookup_value_regex = r"\d+"
    permission_classes = [permissions.IsAuthenticated]

    def destroy(self, request, pk=None):
        services.delete_bet(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class SignupView(APIView):
    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = SignupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.register_user(**serializer.validated_data)
        login(request, user, backend="django.contrib.auth.backends.ModelBackend")
        return Response({"user": _user_payload(user)}, status=status.HTTP_201_CREATED)


class LoginView(APIView):
    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data["email"].strip().lower()
        account = get_user_model().objects.filter(email__iexact=email).first()
        user = None
        if account is not None:
            user = authenticate(
                request,
                username=account.username,
                password=serializer.validated_data["password"],
            )
        if user is None:
            logger.warning("Failed login attempt for %s", email)
            raise AuthenticationRequired("Invalid email or password.")
        login(request, user)
        return Response({"user": _user_payload(user)})


class LogoutView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        logout(request)
        return Response(status=status.HTTP_204_NO_CONTENT)
