from __future__ import annotations

import os

from django.core.management.base import BaseCommand

from beermile import services


class Command(BaseCommand):
    help = "Seed the admin account and the beer mile event"

    def add_arguments(self, parser):
        parser.add_argument("--no-output", action="store_true", help="Suppress success output")
        parser.add_argument("--name", default="Annie's Beer Mile", help="Event name")
        parser.add_argument("--slug", default="annies-beer-mile", help="Event slug")
        parser.add_argument(
            "--admin-password",
            default=os.getenv("BEERMILE_ADMIN_PASSWORD", "admin123!"),
            help="Password for a newly created admin account",
        )

    def handle(self, *args, **options):
        event = services.seed_default_event(
            name=options["name"],
            slug=options["slug"],
            admin_password=options["admin_password"],
        )
        if not options["no_output"]:
            self.stdout.write(self.style.SUCCESS(f"Seeded event: {event.name} ({event.slug}, id={event.pk})"))
