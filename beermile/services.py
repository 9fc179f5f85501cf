"""Domain services: availability, date locking, bets and settlement."""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from . import consensus, models, scoring, utils
from .exceptions import AuthorizationError, Conflict, ResourceNotFound, ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "current_event",
    "get_event",
    "register_user",
    "availability_for_month",
    "update_availability",
    "date_has_consensus",
    "lock_event",
    "unlock_event",
    "clean_bet_input",
    "place_bet",
    "delete_bet",
    "bets_for_user",
    "bet_distribution",
    "enter_results",
    "preview_results",
    "finalize_results",
    "reset_results",
    "leaderboard_for_event",
    "seed_default_event",
]


USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,20}$")
PASSWORD_SPECIALS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


# ---------------------------------------------------------------------------
# Lookups


def current_event() -> models.Event:
    """Return the deployment's active event.

    ``BEERMILE_EVENT_ID`` may hold a primary key or a slug; when unset the
    oldest event is used.
    """

    configured = getattr(settings, "BEERMILE_EVENT_ID", None)
    events = models.Event.objects.all()
    if configured:
        text = str(configured)
        lookup = Q(slug=text)
        if text.isdigit():
            lookup |= Q(pk=int(text))
        event = events.filter(lookup).first()
    else:
        event = events.order_by("created_at", "pk").first()
    if event is None:
        raise ResourceNotFound("Event not found.")
    return event


def get_event(event_id: int | models.Event, *, for_update: bool = False) -> models.Event:
    lookup = event_id.pk if isinstance(event_id, models.Event) else event_id
    queryset = models.Event.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=lookup)
    except (models.Event.DoesNotExist, ValueError, TypeError) as exc:
        raise ResourceNotFound("Event not found.") from exc


def _require_admin(actor) -> None:
    if not getattr(actor, "is_admin", False):
        raise AuthorizationError("Only admins can perform this action.")


def _audit(action: str, event: models.Event | None, actor, **payload) -> models.AuditLog:
    return models.AuditLog.objects.create(
        action=action,
        event=event,
        actor=actor if getattr(actor, "pk", None) else None,
        payload=payload,
    )


def _usernames(user_ids: Iterable[int]) -> dict[int, str]:
    return dict(get_user_model().objects.filter(pk__in=list(user_ids)).values_list("pk", "username"))


# ---------------------------------------------------------------------------
# Accounts


def register_user(*, username: str, email: str, password: str):
    """Create a regular user and give them a leaderboard row for the current event."""

    username = (username or "").strip()
    email = (email or "").strip().lower()
    errors: dict[str, list[str]] = {}
    if not USERNAME_PATTERN.match(username):
        errors.setdefault("username", []).append(
            "Username must be 3-20 characters of letters, numbers and underscores."
        )
    try:
        validate_email(email)
    except DjangoValidationError:
        errors.setdefault("email", []).append("Invalid email format.")
    password = password or ""
    if len(password) < 8:
        errors.setdefault("password", []).append("Password must be at least 8 characters.")
    if not any(ch.isdigit() for ch in password):
        errors.setdefault("password", []).append("Password must contain at least one number.")
    if not PASSWORD_SPECIALS.search(password):
        errors.setdefault("password", []).append("Password must contain at least one special character.")
    if errors:
        raise ValidationError("Invalid signup details.", details=errors)

    User = get_user_model()
    existing = User.objects.filter(Q(email__iexact=email) | Q(username__iexact=username)).first()
    if existing:
        if existing.email.lower() == email:
            raise Conflict("Email already registered.")
        raise Conflict("Username already taken.")

    with transaction.atomic():
        user = User.objects.create_user(username=username, email=email, password=password)
        try:
            event = current_event()
        except ResourceNotFound:
            event = None
        if event is not None:
            models.LeaderboardEntry.objects.get_or_create(user=user, event=event)
    logger.info("Registered user %s", user.username)
    return user


# ---------------------------------------------------------------------------
# Availability


def availability_for_month(event: models.Event, user, year: int, month: int) -> dict[str, object]:
    """Summarise everybody's availability for a month of the calendar."""

    start, end = utils.month_bounds(year, month)
    User = get_user_model()
    user_ids = list(User.objects.order_by("pk").values_list("pk", flat=True))
    records = list(
        models.Availability.objects.filter(
            event=event,
            calendar_date__gte=start,
            calendar_date__lte=end,
        )
    )
    usernames = _usernames({record.user_id for record in records})
    summaries = consensus.summarize_month(year, month, user_ids, records, usernames)
    today = utils.local_today()
    window_start, window_end = utils.three_month_window(today)
    return {
        "event_id": event.pk,
        "event_locked": event.is_locked,
        "month": f"{year:04d}-{month:02d}",
        "availabilities": [summary.as_dict() for summary in summaries],
        "user_availability": {
            utils.to_iso_date(record.calendar_date): record.is_available
            for record in records
            if record.user_id == user.pk
        },
        "consensus_dates": [
            utils.to_iso_date(day) for day in consensus.consensus_dates(summaries, today)
        ],
        "calendar": utils.calendar_grid(year, month),
        "window": {
            "start": utils.to_iso_date(window_start),
            "end": utils.to_iso_date(window_end),
        },
    }


def _coerce_update(update) -> tuple[date, bool]:
    if isinstance(update, dict):
        raw_date, flag = update.get("date"), update.get("is_available")
    else:
        raw_date, flag = update
    if isinstance(raw_date, str):
        try:
            raw_date = utils.from_iso_date(raw_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
    if not isinstance(raw_date, date):
        raise ValidationError("Each update needs a date.")
    if not isinstance(flag, bool):
        raise ValidationError("is_available must be true or false.")
    return raw_date, flag


def update_availability(event_id: int | models.Event, user, updates: Iterable) -> int:
    """Upsert the user's availability marks. All updates apply or none do."""

    cleaned = [_coerce_update(update) for update in updates]
    with transaction.atomic():
        event = get_event(event_id, for_update=True)
        if event.is_locked:
            raise Conflict("Event is locked; cannot modify availability.")
        today = utils.local_today()
        _, window_end = utils.three_month_window(today)
        for day, _ in cleaned:
            if utils.is_past_date(day, today):
                raise ValidationError(f"Cannot update availability for past dates: {utils.to_iso_date(day)}")
            if utils.is_outside_window(day, today):
                raise ValidationError(
                    f"Cannot update availability after {utils.to_iso_date(window_end)}: {utils.to_iso_date(day)}"
                )
        for day, flag in cleaned:
            models.Availability.objects.update_or_create(
                user=user,
                event=event,
                calendar_date=day,
                defaults={"is_available": flag},
            )
    logger.info("User %s updated %d availability mark(s) for event %s", user.pk, len(cleaned), event.pk)
    return len(cleaned)


def date_has_consensus(event: models.Event, day: date) -> bool:
    """Check the date against the full current user set."""

    user_ids = list(get_user_model().objects.values_list("pk", flat=True))
    records = list(models.Availability.objects.filter(event=event, calendar_date=day))
    return consensus.compute_consensus(user_ids, records)


# ---------------------------------------------------------------------------
# Lock state machine


def lock_event(event_id: int | models.Event, scheduled_date: date | str, actor) -> models.Event:
    """Lock the event onto a consensus date."""

    _require_admin(actor)
    if isinstance(scheduled_date, str):
        try:
            scheduled_date = utils.from_iso_date(scheduled_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    with transaction.atomic():
        event = get_event(event_id, for_update=True)
        if event.is_locked:
            raise Conflict("Event is already locked.")
        if utils.is_past_date(scheduled_date):
            raise Conflict("Cannot lock event date in the past.")
        user_ids = list(get_user_model().objects.values_list("pk", flat=True))
        records = list(models.Availability.objects.filter(event=event, calendar_date=scheduled_date))
        if not consensus.compute_consensus(user_ids, records):
            available = {record.user_id for record in records if record.is_available}
            missing = len(set(user_ids) - available)
            logger.warning(
                "Lock of event %s on %s rejected: %d user(s) unavailable",
                event.pk,
                scheduled_date,
                missing,
            )
            raise Conflict(f"Date does not have full consensus. {missing} user(s) are unavailable.")

        now = timezone.now()
        claimed = models.Event.objects.filter(pk=event.pk, scheduled_date__isnull=True).update(
            scheduled_date=scheduled_date,
            locked_at=now,
            updated_at=now,
        )
        if not claimed:
            raise Conflict("Event is already locked.")
        event.refresh_from_db()
        _audit("event.lock", event, actor, scheduled_date=utils.to_iso_date(scheduled_date))
    logger.info("Event %s locked on %s by %s", event.pk, scheduled_date, actor.pk)
    return event


def unlock_event(event_id: int | models.Event, actor) -> models.Event:
    """Return a locked event to the unscheduled state.

    Outcome values entered but not finalized are cleared as well.
    """

    _require_admin(actor)
    with transaction.atomic():
        event = get_event(event_id, for_update=True)
        if event.results_finalized:
            raise Conflict("Results are finalized; the event can no longer be unlocked.")
        if not event.is_locked:
            raise Conflict("Event is not currently locked.")
        event.scheduled_date = None
        event.locked_at = None
        event.final_time_seconds = None
        event.vomit_outcome = None
        event.save(
            update_fields=[
                "scheduled_date",
                "locked_at",
                "final_time_seconds",
                "vomit_outcome",
                "updated_at",
            ]
        )
        _audit("event.unlock", event, actor)
    logger.info("Event %s unlocked by %s", event.pk, actor.pk)
    return event


# ---------------------------------------------------------------------------
# Bets


def clean_bet_input(bet_input: dict) -> tuple[str, dict]:
    """Validate a bet payload and return ``(bet_type, bet_data)``."""

    if not isinstance(bet_input, dict):
        raise ValidationError("Invalid bet data.")
    bet_type = bet_input.get("bet_type")
    if bet_type not in scoring.BET_TYPES:
        raise ValidationError(
            "Invalid bet data.",
            details={"bet_type": [f"Must be one of: {', '.join(scoring.BET_TYPES)}."]},
        )

    def seconds(field: str) -> int:
        try:
            return utils.parse_seconds(bet_input.get(field))
        except ValueError as exc:
            raise ValidationError("Invalid bet data.", details={field: [str(exc)]}) from exc

    if bet_type == scoring.TIME_OVER_UNDER:
        direction = bet_input.get("direction")
        if direction not in ("over", "under"):
            raise ValidationError("Invalid bet data.", details={"direction": ["Must be 'over' or 'under'."]})
        return bet_type, {
            "threshold_seconds": seconds("threshold_seconds"),
            "direction": direction,
        }
    if bet_type == scoring.EXACT_TIME_GUESS:
        return bet_type, {"guessed_time_seconds": seconds("guessed_time_seconds")}

    prediction = bet_input.get("prediction")
    if prediction not in ("yes", "no"):
        raise ValidationError("Invalid bet data.", details={"prediction": ["Must be 'yes' or 'no'."]})
    return bet_type, {"prediction": prediction}


def place_bet(event_id: int | models.Event, user, bet_input: dict) -> models.Bet:
    """Create a pending bet; single-per-user types replace the previous one."""

    bet_type, bet_data = clean_bet_input(bet_input)
    with transaction.atomic():
        event = get_event(event_id, for_update=True)
        if not event.is_locked:
            raise Conflict("Event date must be locked before placing bets.")
        if event.results_finalized:
            raise Conflict("Results already finalized; no more bets allowed.")
        if bet_type in models.Bet.SINGLE_PER_USER:
            replaced, _ = models.Bet.objects.filter(user=user, event=event, bet_type=bet_type).delete()
            if replaced:
                logger.info("User %s replaced their %s bet on event %s", user.pk, bet_type, event.pk)
        bet = models.Bet.objects.create(
            user=user,
            event=event,
            bet_type=bet_type,
            bet_data=bet_data,
            status=models.Bet.Status.PENDING,
            points_awarded=0,
        )
    logger.info("User %s placed %s bet %s", user.pk, bet_type, bet.pk)
    return bet


def delete_bet(bet_id: int, user) -> None:
    bet = models.Bet.objects.select_related("event").filter(pk=bet_id).first()
    if bet is None:
        raise ResourceNotFound("Bet not found.")
    if bet.user_id != user.pk:
        raise AuthorizationError("You can only delete your own bets.")
    if bet.event.results_finalized:
        raise Conflict("Results already finalized; cannot delete bets.")
    bet.delete()
    logger.info("User %s deleted bet %s", user.pk, bet_id)


def bets_for_user(event: models.Event, user):
    return models.Bet.objects.filter(event=event, user=user).order_by("-created_at", "-pk")


def bet_distribution(event: models.Event) -> dict[str, object]:
    """Aggregate everybody's bets for the betting board."""

    distribution: dict[str, object] = {
        scoring.TIME_OVER_UNDER: {},
        scoring.EXACT_TIME_GUESS: {"guesses": []},
        scoring.VOMIT_PROP: {"yes": 0, "no": 0},
    }
    over_under: dict[str, int] = distribution[scoring.TIME_OVER_UNDER]
    guesses: list[dict[str, object]] = distribution[scoring.EXACT_TIME_GUESS]["guesses"]
    props: dict[str, int] = distribution[scoring.VOMIT_PROP]

    for bet in event.bets.select_related("user").order_by("pk"):
        data = bet.bet_data or {}
        if bet.bet_type == scoring.TIME_OVER_UNDER:
            key = f"{data.get('threshold_seconds')}_{data.get('direction')}"
            over_under[key] = over_under.get(key, 0) + 1
        elif bet.bet_type == scoring.EXACT_TIME_GUESS:
            guesses.append({"time": data.get("guessed_time_seconds"), "user": bet.user.username})
        elif bet.bet_type == scoring.VOMIT_PROP:
            prediction = "yes" if data.get("prediction") == "yes" else "no"
            props[prediction] += 1
    guesses.sort(key=lambda item: item["time"])
    return distribution


# ---------------------------------------------------------------------------
# Settlement


def _pending_bets(event: models.Event, *, for_update: bool = False) -> list[models.Bet]:
    queryset = models.Bet.objects.filter(event=event, status=models.Bet.Status.PENDING)
    if for_update:
        queryset = queryset.select_for_update()
    return list(queryset.order_by("created_at", "pk"))


def preview_results(event: models.Event) -> scoring.ScoringPreview:
    """Score pending bets against the stored outcome without saving anything.

    The projected leaderboard only includes users who placed a bet.
    """

    if not event.has_results:
        raise Conflict("Results have not been entered.")
    bets = _pending_bets(event)
    bettor_ids = list(
        models.Bet.objects.filter(event=event).order_by("user_id").values_list("user_id", flat=True).distinct()
    )
    return scoring.build_preview(
        bets,
        event.final_time_seconds,
        event.vomit_outcome,
        seed_user_ids=bettor_ids,
        usernames=_usernames(bettor_ids),
    )


def enter_results(
    event_id: int | models.Event,
    final_time_seconds: int | str,
    vomit_outcome: bool,
    actor,
) -> scoring.ScoringPreview:
    """Store the outcome values and return a dry-run preview."""

    _require_admin(actor)
    try:
        final_time_seconds = utils.parse_seconds(final_time_seconds)
    except ValueError as exc:
        raise ValidationError("Invalid input.", details={"final_time_seconds": [str(exc)]}) from exc
    if not isinstance(vomit_outcome, bool):
        raise ValidationError("Invalid input.", details={"vomit_outcome": ["Must be true or false."]})

    with transaction.atomic():
        event = get_event(event_id, for_update=True)
        if event.results_finalized:
            raise Conflict("Results already finalized.")
        if not event.is_locked:
            raise Conflict("Event date must be locked before entering results.")
        event.final_time_seconds = final_time_seconds
        event.vomit_outcome = vomit_outcome
        event.save(update_fields=["final_time_seconds", "vomit_outcome", "updated_at"])
        _audit(
            "results.enter",
            event,
            actor,
            final_time_seconds=final_time_seconds,
            vomit_outcome=vomit_outcome,
        )
    logger.info(
        "User %s entered results for event %s: %ss, vomit=%s",
        actor.pk,
        event.pk,
        final_time_seconds,
        vomit_outcome,
    )
    return preview_results(event)


def finalize_results(event_id: int | models.Event, actor, *, confirm: bool = True) -> models.Event:
    """Score pending bets, publish the leaderboard and freeze the event.

    Runs as one transaction; the ``results_finalized`` flag is claimed with a
    conditional update so concurrent calls cannot both award points.
    """

    _require_admin(actor)
    if confirm is not True:
        raise ValidationError("Finalization must be confirmed.", details={"confirm": ["Must be true."]})

    with transaction.atomic():
        event = get_event(event_id, for_update=True)
        if event.results_finalized:
            logger.warning("Finalize called twice for event %s", event.pk)
            raise Conflict("Results already finalized.")
        if not event.is_locked:
            raise Conflict("Event date must be locked before finalizing.")
        if not event.has_results:
            raise Conflict("Results must be entered before finalizing.")

        now = timezone.now()
        claimed = models.Event.objects.filter(pk=event.pk, results_finalized=False).update(
            results_finalized=True,
            finalized_at=now,
            status=models.Event.Status.COMPLETED,
            updated_at=now,
        )
        if not claimed:
            raise Conflict("Results already finalized.")

        bets = _pending_bets(event, for_update=True)
        outcomes = scoring.score_bets(bets, event.final_time_seconds, event.vomit_outcome)
        by_id = {bet.pk: bet for bet in bets}
        for outcome in outcomes:
            bet = by_id[outcome.bet_id]
            bet.status = outcome.status
            bet.points_awarded = outcome.points_awarded
            bet.bet_data = {**(bet.bet_data or {}), "won": outcome.won}
        models.Bet.objects.bulk_update(bets, ["status", "points_awarded", "bet_data"])

        user_ids = get_user_model().objects.order_by("pk").values_list("pk", flat=True)
        rows = scoring.rank_leaderboard(
            scoring.tally_points(user_ids, models.Bet.objects.filter(event=event).order_by("pk"))
        )
        for row in rows:
            models.LeaderboardEntry.objects.update_or_create(
                user_id=row.user_id,
                event=event,
                defaults={"points_earned": row.points, "rank": row.rank},
            )

        event.refresh_from_db()
        _audit(
            "results.finalize",
            event,
            actor,
            bets_scored=len(outcomes),
            winners=sum(1 for outcome in outcomes if outcome.won),
        )
    logger.info("Event %s finalized by %s; %d bet(s) scored", event.pk, actor.pk, len(outcomes))
    return event


def reset_results(event_id: int | models.Event, reason: str, actor) -> models.Event:
    """Undo entered results before finalization."""

    _require_admin(actor)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Invalid input.", details={"reason": ["Reason is required."]})

    with transaction.atomic():
        event = get_event(event_id, for_update=True)
        if event.results_finalized:
            raise Conflict("Results already finalized; cannot reset.")

        bets = list(models.Bet.objects.select_for_update().filter(event=event))
        for bet in bets:
            bet.status = models.Bet.Status.PENDING
            bet.points_awarded = 0
            bet.bet_data = {key: value for key, value in (bet.bet_data or {}).items() if key != "won"}
        models.Bet.objects.bulk_update(bets, ["status", "points_awarded", "bet_data"])

        event.final_time_seconds = None
        event.vomit_outcome = None
        event.save(update_fields=["final_time_seconds", "vomit_outcome", "updated_at"])

        models.LeaderboardEntry.objects.filter(event=event).update(
            points_earned=0,
            rank=None,
            updated_at=timezone.now(),
        )
        _audit("results.reset", event, actor, reason=reason)
    logger.info("User %s reset results for event %s. Reason: %s", actor.pk, event.pk, reason)
    return event


# ---------------------------------------------------------------------------
# Leaderboard


def _bet_breakdown(bets: Iterable[models.Bet]) -> dict[str, object]:
    breakdown: dict[str, object] = {
        scoring.EXACT_TIME_GUESS: None,
        scoring.TIME_OVER_UNDER: [],
        scoring.VOMIT_PROP: None,
    }
    for bet in bets:
        item = {"bet": bet.bet_data, "result": bet.status, "points": bet.points_awarded}
        if bet.bet_type == scoring.TIME_OVER_UNDER:
            breakdown[scoring.TIME_OVER_UNDER].append(item)
        else:
            breakdown[bet.bet_type] = item
    return breakdown


def leaderboard_for_event(event: models.Event) -> list[dict[str, object]]:
    """Published leaderboard rows with each user's bets."""

    entries = list(models.LeaderboardEntry.objects.filter(event=event).select_related("user"))
    bets_by_user: dict[int, list[models.Bet]] = {}
    for bet in models.Bet.objects.filter(event=event).order_by("created_at", "pk"):
        bets_by_user.setdefault(bet.user_id, []).append(bet)
    return [
        {
            "rank": entry.rank,
            "user_id": entry.user_id,
            "username": entry.user.username,
            "points_earned": entry.points_earned,
            "bets": _bet_breakdown(bets_by_user.get(entry.user_id, [])),
        }
        for entry in entries
    ]


# ---------------------------------------------------------------------------
# Seeding


def seed_default_event(
    *,
    name: str = "Annie's Beer Mile",
    slug: str = "annies-beer-mile",
    admin_username: str = "admin",
    admin_email: str = "admin@beer-mile.test",
    admin_password: str = "admin123!",
) -> models.Event:
    """Create the admin account and the event if they do not exist."""

    User = get_user_model()
    admin = User.objects.filter(username=admin_username).first()
    if admin is None:
        admin = User.objects.create_user(
            username=admin_username,
            email=admin_email,
            password=admin_password,
            role=models.User.Role.ADMIN,
            is_staff=True,
        )
    elif admin.role != models.User.Role.ADMIN:
        admin.role = models.User.Role.ADMIN
        admin.save(update_fields=["role"])
    event, _ = models.Event.objects.get_or_create(slug=slug, defaults={"name": name})
    models.LeaderboardEntry.objects.get_or_create(user=admin, event=event)
    return event
