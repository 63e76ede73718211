from django.apps import AppConfig


class SignupsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.signups"
    label = "signups"
    verbose_name = "Lab signups"
