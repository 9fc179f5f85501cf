from __future__ import annotations

from datetime import date
from unittest import mock
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "beermile_platform.settings")

import django

django.setup()

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from beermile import models, services


class BeerMileAPITests(TestCase):
    def setUp(self) -> None:
        patcher = mock.patch("beermile.utils.local_today", return_value=date(2026, 3, 1))
        patcher.start()
        self.addCleanup(patcher.stop)

        User = get_user_model()
        self.admin = User.objects.create_user(
            username="ann", email="ann@example.com", password="pass1234!", role=models.User.Role.ADMIN
        )
        self.user = User.objects.create_user(username="bea", email="bea@example.com", password="pass1234!")
        self.event = models.Event.objects.create(name="Spring Mile", slug="spring-mile")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)
        self.admin_client = APIClient()
        self.admin_client.force_authenticate(user=self.admin)
        self.base = f"/api/events/{self.event.pk}"

    def mark(self, client, day="2026-03-15", available=True):
        return client.post(
            f"{self.base}/availability/",
            {"updates": [{"date": day, "is_available": available}]},
            format="json",
        )

    def lock(self):
        self.mark(self.client)
        self.mark(self.admin_client)
        return self.admin_client.post(f"{self.base}/lock/", {"scheduled_date": "2026-03-15"}, format="json")

    def test_requires_authentication(self) -> None:
        resp = APIClient().get(f"{self.base}/")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"]["code"], "AUTHENTICATION_REQUIRED")

    def test_current_event(self) -> None:
        resp = self.client.get("/api/events/current/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["id"], self.event.pk)
        self.assertEqual(resp.json()["phase"], "unscheduled")

    def test_unknown_event(self) -> None:
        resp = self.client.get("/api/events/9999/")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"]["code"], "RESOURCE_NOT_FOUND")

    def test_availability_round_trip(self) -> None:
        resp = self.mark(self.client)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"updated": 1})

        resp = self.client.get(f"{self.base}/availability/", {"month": "2026-03"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["user_availability"], {"2026-03-15": True})
        self.assertEqual(body["consensus_dates"], [])
        self.assertEqual(body["calendar"][0], [1, 2, 3, 4, 5, 6, 7])

    def test_availability_errors(self) -> None:
        resp = self.client.get(f"{self.base}/availability/", {"month": "March"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["message"], "Invalid month parameter. Use YYYY-MM format.")

        resp = self.mark(self.client, day="2026-02-01")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["code"], "VALIDATION_ERROR")

        resp = self.mark(self.client, day="15/03/2026")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("details", resp.json()["error"])

    def test_lock_is_admin_only(self) -> None:
        self.mark(self.client)
        self.mark(self.admin_client)
        resp = self.client.post(f"{self.base}/lock/", {"scheduled_date": "2026-03-15"}, format="json")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"]["code"], "AUTHORIZATION_ERROR")

    def test_lock_conflicts(self) -> None:
        self.mark(self.admin_client)
        resp = self.admin_client.post(f"{self.base}/lock/", {"scheduled_date": "2026-03-15"}, format="json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(
            resp.json()["error"]["message"],
            "Date does not have full consensus. 1 user(s) are unavailable.",
        )

        resp = self.lock()
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["scheduled_date"], "2026-03-15")

        resp = self.mark(self.client, day="2026-03-20")
        self.assertEqual(resp.status_code, 409)

    def test_bets_flow(self) -> None:
        resp = self.client.post(f"{self.base}/bets/", {"bet_type": "vomit_prop", "prediction": "no"}, format="json")
        self.assertEqual(resp.status_code, 409)

        self.lock()
        resp = self.client.post(
            f"{self.base}/bets/",
            {"bet_type": "time_over_under", "threshold_seconds": "6:00", "direction": "over"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["bet_data"], {"threshold_seconds": 360, "direction": "over"})
        self.assertEqual(resp.json()["status"], "pending")

        resp = self.client.post(f"{self.base}/bets/", {"bet_type": "exact_time_guess"}, format="json")
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post(f"{self.base}/bets/", {"bet_type": "longest_chug"}, format="json")
        self.assertEqual(resp.status_code, 400)

        resp = self.client.get(f"{self.base}/bets/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()["my_bets"]), 1)
        self.assertEqual(resp.json()["distribution"]["time_over_under"], {"360_over": 1})

    def test_delete_bet(self) -> None:
        self.lock()
        bet = services.place_bet(self.event.pk, self.user, {"bet_type": "vomit_prop", "prediction": "yes"})

        resp = self.admin_client.delete(f"/api/bets/{bet.pk}/")
        self.assertEqual(resp.status_code, 403)

        resp = self.client.delete(f"/api/bets/{bet.pk}/")
        self.assertEqual(resp.status_code, 204)

        resp = self.client.delete(f"/api/bets/{bet.pk}/")
        self.assertEqual(resp.status_code, 404)

    def test_results_need_locked_event(self) -> None:
        resp = self.admin_client.post(
            f"{self.base}/results/", {"final_time_seconds": 300, "vomit_outcome": True}, format="json"
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"]["message"], "Event date must be locked before entering results.")

    def test_results_finalize_and_leaderboard(self) -> None:
        self.lock()
        services.place_bet(self.event.pk, self.user, {"bet_type": "exact_time_guess", "guessed_time_seconds": 347})

        resp = self.admin_client.post(
            f"{self.base}/results/", {"final_time_seconds": 400, "vomit_outcome": False}, format="json"
        )
        self.assertEqual(resp.status_code, 200)
        preview = resp.json()["preview"]
        self.assertEqual(preview["winners"][0]["details"], "Closest guess: bea (53s off)")
        self.assertEqual(
            preview["leaderboard"],
            [{"rank": 1, "user_id": self.user.pk, "username": "bea", "points": 1}],
        )

        resp = self.admin_client.post(f"{self.base}/finalize/", {}, format="json")
        self.assertEqual(resp.status_code, 400)

        resp = self.admin_client.post(f"{self.base}/finalize/", {"confirm": True}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["event"]["phase"], "finalized")

        resp = self.admin_client.post(f"{self.base}/finalize/", {"confirm": True}, format="json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"]["code"], "CONFLICT")

        resp = self.client.get(f"{self.base}/leaderboard/")
        self.assertEqual(resp.status_code, 200)
        entries = resp.json()["entries"]
        self.assertEqual([entry["username"] for entry in entries], ["bea", "ann"])
        self.assertEqual(entries[0]["points_earned"], 1)
        self.assertEqual(entries[0]["bets"]["exact_time_guess"]["result"], "won")

    def test_reset_requires_reason(self) -> None:
        self.lock()
        self.admin_client.post(
            f"{self.base}/results/", {"final_time_seconds": "6:40", "vomit_outcome": True}, format="json"
        )
        resp = self.admin_client.post(f"{self.base}/reset/", {"reason": ""}, format="json")
        self.assertEqual(resp.status_code, 400)

        resp = self.admin_client.post(f"{self.base}/reset/", {"reason": "Timer glitch"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertIsNone(resp.json()["final_time_seconds"])


class AuthAPITests(TestCase):
    def setUp(self) -> None:
        self.event = models.Event.objects.create(name="Spring Mile", slug="spring-mile")
        self.client = APIClient()

    def test_signup_login_logout(self) -> None:
        resp = self.client.post(
            "/api/auth/signup/",
            {"username": "dan_1", "email": "dan@example.com", "password": "secret1!x"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["user"]["role"], "user")
        self.assertTrue(models.LeaderboardEntry.objects.filter(user__username="dan_1").exists())

        self.client.post("/api/auth/logout/")
        resp = self.client.post(
            "/api/auth/login/", {"email": "dan@example.com", "password": "secret1!x"}, format="json"
        )
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get("/api/events/current/")
        self.assertEqual(resp.status_code, 200)

    def test_signup_validation(self) -> None:
        resp = self.client.post(
            "/api/auth/signup/",
            {"username": "x", "email": "dan@example.com", "password": "weak"},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("password", resp.json()["error"]["details"])

    def test_bad_login(self) -> None:
        resp = self.client.post(
            "/api/auth/login/", {"email": "nobody@example.com", "password": "secret1!x"}, format="json"
        )
        self.assertEqual(resp.status_code, 401)
