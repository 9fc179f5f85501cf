"""Admin registrations for the beer mile application."""
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from . import models


@admin.register(models.User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "email", "role", "is_active", "date_joined")
    list_filter = ("role", "is_active", "is_staff")
    fieldsets = BaseUserAdmin.fieldsets + (("Beer Mile", {"fields": ("role",)}),)


@admin.register(models.Event)
class EventAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "slug",
        "status",
        "scheduled_date",
        "final_time_seconds",
        "vomit_outcome",
        "results_finalized",
    )
    list_filter = ("status", "results_finalized")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
    readonly_fields = ("locked_at", "finalized_at", "created_at", "updated_at")


@admin.register(models.Availability)
class AvailabilityAdmin(admin.ModelAdmin):
    list_display = ("calendar_date", "user", "event", "is_available", "updated_at")
    list_filter = ("event", "is_available")
    search_fields = ("user__username",)
    date_hierarchy = "calendar_date"


@admin.register(models.Bet)
class BetAdmin(admin.ModelAdmin):
    list_display = ("user", "event", "bet_type", "status", "points_awarded", "created_at")
    list_filter = ("event", "bet_type", "status")
    search_fields = ("user__username",)


@admin.register(models.LeaderboardEntry)
class LeaderboardEntryAdmin(admin.ModelAdmin):
    list_display = ("event", "rank", "user", "points_earned", "updated_at")
    list_filter = ("event",)
    search_fields = ("user__username",)


@admin.register(models.AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("ts", "action", "event", "actor")
    list_filter = ("action", "event")
    search_fields = ("action", "actor__username")
    readonly_fields = ("ts", "action", "event", "actor", "payload")
