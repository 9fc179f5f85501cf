"""Serializers for the Beer Mile REST endpoints."""

from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from . import scoring, services
from .exceptions import ValidationError as BeerMileValidationError
from .models import Bet, Event


class SignupSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    email = serializers.CharField(max_length=254)
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class LoginSerializer(serializers.Serializer):
    email = serializers.CharField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class AvailabilityMarkSerializer(serializers.Serializer):
    date = serializers.DateField(input_formats=["%Y-%m-%d"])
    is_available = serializers.BooleanField()


class AvailabilityUpdateSerializer(serializers.Serializer):
    updates = AvailabilityMarkSerializer(many=True)


class LockDateSerializer(serializers.Serializer):
    scheduled_date = serializers.DateField(input_formats=["%Y-%m-%d"])


class ResultsSerializer(serializers.Serializer):
    final_time_seconds = serializers.JSONField()
    vomit_outcome = serializers.BooleanField()


class FinalizeSerializer(serializers.Serializer):
    confirm = serializers.BooleanField()


class ResetSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=False)


class BetInputSerializer(serializers.Serializer):
    """Accepts every bet shape; type-specific fields are checked in ``validate``."""

    bet_type = serializers.ChoiceField(choices=scoring.BET_TYPES)
    threshold_seconds = serializers.JSONField(required=False)
    direction = serializers.ChoiceField(choices=["over", "under"], required=False)
    guessed_time_seconds = serializers.JSONField(required=False)
    prediction = serializers.ChoiceField(choices=["yes", "no"], required=False)

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        try:
            bet_type, bet_data = services.clean_bet_input(attrs)
        except BeerMileValidationError as exc:
            raise serializers.ValidationError(exc.details or str(exc.detail)) from exc
        return {"bet_type": bet_type, **bet_data}


class EventSerializer(serializers.ModelSerializer):
    phase = serializers.CharField(read_only=True)
    is_locked = serializers.BooleanField(read_only=True)

    class Meta:
        model = Event
        fields = [
            "id",
            "name",
            "slug",
            "status",
            "phase",
            "is_locked",
            "scheduled_date",
            "locked_at",
            "final_time_seconds",
            "vomit_outcome",
            "results_finalized",
            "finalized_at",
        ]
        read_only_fields = fields


class BetSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True)

    class Meta:
        model = Bet
        fields = [
            "id",
            "event",
            "user",
            "username",
            "bet_type",
            "bet_data",
            "status",
            "points_awarded",
            "created_at",
        ]
        read_only_fields = fields


class LeaderboardRowSerializer(serializers.Serializer):
    rank = serializers.IntegerField()
    user_id = serializers.IntegerField()
    username = serializers.CharField(allow_null=True)
    points = serializers.IntegerField()


class BetOutcomeSerializer(serializers.Serializer):
    bet_id = serializers.IntegerField()
    user_id = serializers.IntegerField()
    bet_type = serializers.CharField()
    status = serializers.CharField()
    points_awarded = serializers.IntegerField()


class ScoringPreviewSerializer(serializers.Serializer):
    """Dry-run settlement returned after results are entered."""

    winners = serializers.ListField(child=serializers.DictField())
    leaderboard = LeaderboardRowSerializer(many=True)
    outcomes = BetOutcomeSerializer(many=True)
