"""Database models for the Beer Mile planner."""
from __future__ import annotations

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q


MAX_TIME_SECONDS = 1200


class User(AbstractUser):
    """A participant. Admins may lock dates and settle results."""

    class Role(models.TextChoices):
        USER = "user", "User"
        ADMIN = "admin", "Admin"

    email = models.EmailField(unique=True)
    role = models.CharField(max_length=8, choices=Role.choices, default=Role.USER)

    @property
    def is_admin(self) -> bool:
        return self.role == self.Role.ADMIN


class Event(models.Model):
    """The race everybody is planning and betting on."""

    class Status(models.TextChoices):
        SCHEDULED = "scheduled", "Scheduled"
        COMPLETED = "completed", "Completed"

    class Phase(models.TextChoices):
        UNSCHEDULED = "unscheduled", "Unscheduled"
        LOCKED = "locked", "Locked"
        RESULTS_ENTERED = "results_entered", "Results entered"
        FINALIZED = "finalized", "Finalized"

    name = models.CharField(max_length=120)
    slug = models.SlugField(unique=True)
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.SCHEDULED)
    scheduled_date = models.DateField(blank=True, null=True)
    locked_at = models.DateTimeField(blank=True, null=True)
    final_time_seconds = models.PositiveIntegerField(
        blank=True,
        null=True,
        validators=[MinValueValidator(0), MaxValueValidator(MAX_TIME_SECONDS)],
    )
    vomit_outcome = models.BooleanField(blank=True, null=True)
    results_finalized = models.BooleanField(default=False)
    finalized_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("created_at", "pk")

    def __str__(self) -> str:
        return self.name

    @property
    def is_locked(self) -> bool:
        return self.scheduled_date is not None

    @property
    def has_results(self) -> bool:
        return self.final_time_seconds is not None and self.vomit_outcome is not None

    @property
    def phase(self) -> str:
        """Return where the event sits in the lock/settlement lifecycle."""

        if self.results_finalized:
            return self.Phase.FINALIZED
        if not self.is_locked:
            return self.Phase.UNSCHEDULED
        if self.has_results:
            return self.Phase.RESULTS_ENTERED
        return self.Phase.LOCKED


class Availability(models.Model):
    """A user's explicit yes/no for one calendar date.

    A missing row means the user has not marked the date yet, which is not
    the same as an explicit ``False``.
    """

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="availabilities")
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="availabilities")
    calendar_date = models.DateField()
    is_available = models.BooleanField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "event", "calendar_date"],
                name="unique_availability_per_user_date",
            ),
        ]
        ordering = ("calendar_date", "user")
        verbose_name_plural = "availabilities"

    def __str__(self) -> str:
        mark = "available" if self.is_available else "unavailable"
        return f"{self.user} {mark} on {self.calendar_date:%Y-%m-%d}"


class Bet(models.Model):
    """A lightweight wager on the event outcome."""

    class BetType(models.TextChoices):
        TIME_OVER_UNDER = "time_over_under", "Time over/under"
        EXACT_TIME_GUESS = "exact_time_guess", "Exact time guess"
        VOMIT_PROP = "vomit_prop", "Vomit prop"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        WON = "won", "Won"
        LOST = "lost", "Lost"

    SINGLE_PER_USER = (BetType.EXACT_TIME_GUESS, BetType.VOMIT_PROP)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="bets")
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="bets")
    bet_type = models.CharField(max_length=20, choices=BetType.choices)
    bet_data = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.PENDING)
    points_awarded = models.PositiveSmallIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "event", "bet_type"],
                condition=Q(bet_type__in=["exact_time_guess", "vomit_prop"]),
                name="unique_single_bet_per_type",
            ),
        ]
        ordering = ("-created_at", "-pk")

    def __str__(self) -> str:
        return f"{self.user} - {self.get_bet_type_display()} ({self.status})"


class LeaderboardEntry(models.Model):
    """Points and rank for a user in an event."""

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="leaderboard_entries")
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="leaderboard_entries")
    points_earned = models.PositiveIntegerField(default=0)
    rank = models.PositiveIntegerField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "event"], name="unique_leaderboard_entry"),
        ]
        ordering = (F("rank").asc(nulls_last=True), "-points_earned", "pk")
        verbose_name_plural = "leaderboard entries"

    def __str__(self) -> str:
        return f"{self.user}: {self.points_earned} pts"


class AuditLog(models.Model):
    """Simple audit trail for admin actions."""

    ts = models.DateTimeField(auto_now_add=True)
    action = models.CharField(max_length=64)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="audit_logs", blank=True, null=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="audit_logs",
        blank=True,
        null=True,
    )
    payload = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ("-ts",)

    def __str__(self) -> str:
        return f"{self.action} at {self.ts:%Y-%m-%d %H:%M:%S}"
