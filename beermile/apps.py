from django.apps import AppConfig


class BeerMileConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "beermile"
    verbose_name = "Beer Mile"
