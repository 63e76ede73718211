from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import AccountProfile


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_account_profile(sender, instance, created, **kwargs):
    if created:
        AccountProfile.objects.get_or_create(user=instance)
