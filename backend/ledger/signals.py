from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from backend.ledger.models import UserProfile


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_ledger_profile(sender, instance, created, **kwargs):
    """Every new user starts as an ADMIN profile; secretaries are re-roled on creation."""
    if created:
        UserProfile.objects.get_or_create(user=instance)
