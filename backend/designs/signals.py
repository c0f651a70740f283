"""
Design review events and cache invalidation receivers.

Events are plain Django signals sent after the writing transaction commits;
delivering notifications is left to whoever connects a receiver. Every event
carries ``recipients``: the users collaborating on the design with
notifications enabled, excluding the user who caused the event.
"""
import logging

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from backend.core.cache_utils import invalidate_design_cache

from .models import Annotation, Design, DesignApproval, DesignCollaboration, DesignVersion

logger = logging.getLogger(__name__)

# All events also carry design, actor and recipients
# kwargs: annotation
annotation_created = Signal()
annotation_resolved = Signal()
annotation_reopened = Signal()
# kwargs: annotation, reply
reply_added = Signal()
# kwargs: version
version_published = Signal()
# kwargs: previous_status
design_status_changed = Signal()


def notification_recipients(design, exclude_user=None):
    """Users to notify about activity on a design"""
    collaborations = design.collaborations.filter(notifications_enabled=True).select_related('user')
    if exclude_user is not None:
        collaborations = collaborations.exclude(user=exclude_user)
    return [collaboration.user for collaboration in collaborations]


def emit_on_commit(signal, sender, design, actor=None, **payload):
    """Send ``signal`` once the current transaction commits"""
    def send():
        recipients = notification_recipients(design, exclude_user=actor)
        signal.send(sender=sender, design=design, actor=actor, recipients=recipients, **payload)
        logger.debug(f"Emitted {sender.__name__} event for design {design.pk} to {len(recipients)} recipients")

    transaction.on_commit(send)


@receiver(post_save, sender=Design)
def invalidate_design_on_save(sender, instance, **kwargs):
    invalidate_design_cache(instance.pk)


@receiver(post_save, sender=Annotation)
@receiver(post_save, sender=DesignVersion)
@receiver(post_save, sender=DesignApproval)
@receiver(post_save, sender=DesignCollaboration)
def invalidate_design_on_related_save(sender, instance, **kwargs):
    invalidate_design_cache(instance.design_id)
