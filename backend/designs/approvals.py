"""
Approval workflow: reviewer verdicts and the design status derived from them.

Only verdicts cast on the design's current version count; publishing a new
version makes every earlier verdict stale until the reviewer votes again.
"""
import logging

from django.db import transaction

from backend.core.exceptions import ValidationError
from backend.core.utils import create_audit_log

from .models import Design, DesignApproval
from .permissions import APPROVE_ROLES, get_design, require_role, reviewer_ids
from .signals import design_status_changed, emit_on_commit

logger = logging.getLogger(__name__)

APPROVED = DesignApproval.STATUS_APPROVED
REJECTED = DesignApproval.STATUS_REJECTED
NEEDS_CHANGES = DesignApproval.STATUS_NEEDS_CHANGES
VERDICTS = frozenset({APPROVED, REJECTED, NEEDS_CHANGES})


def aggregate_status(verdicts, required_reviewers):
    """
    Derive a design status from verdicts.

    ``verdicts`` maps user id to that user's current verdict and
    ``required_reviewers`` is the set of reviewer user ids. When reviewers are
    assigned only their verdicts count; otherwise every verdict cast counts
    and no verdicts at all means the design is still a draft.
    """
    if required_reviewers:
        votes = [verdicts.get(user_id) for user_id in required_reviewers]
    else:
        votes = list(verdicts.values())
        if not votes:
            return Design.STATUS_DRAFT

    if REJECTED in votes:
        return Design.STATUS_REJECTED
    if NEEDS_CHANGES in votes:
        return Design.STATUS_IN_REVIEW
    if all(vote == APPROVED for vote in votes):
        return Design.STATUS_APPROVED
    return Design.STATUS_IN_REVIEW


def current_verdicts(design):
    """Map user id to verdict for verdicts cast on the current version"""
    return dict(
        DesignApproval.objects
        .filter(design=design, design_version=design.version)
        .values_list('user_id', 'status')
    )


def recompute_design_status(design, actor=None, request=None):
    """
    Write the derived status onto ``design`` if it changed.

    Callers hold the design row lock inside a transaction. Returns True when
    the status changed.
    """
    new_status = aggregate_status(current_verdicts(design), reviewer_ids(design))
    previous_status = design.status
    if new_status == previous_status:
        return False

    design.status = new_status
    design.save(update_fields=['status', 'updated_at'])
    logger.info(f"Design {design.pk} status {previous_status} -> {new_status}")

    create_audit_log(
        request=request,
        user=actor,
        action='design_status_change',
        model_name='Design',
        object_id=design.pk,
        object_name=design.title,
        object_reference=design.reference,
        changes={'from': previous_status, 'to': new_status},
    )
    emit_on_commit(design_status_changed, Design, design, actor=actor, previous_status=previous_status)
    return True


def submit_approval(design_id, user, status, comment='', request=None):
    """
    Record the user's verdict on the design's current version.

    Owners, editors and reviewers may vote; a second submission by the same
    user replaces the first. The design row stays locked until the derived
    status has been written.
    """
    if status not in VERDICTS:
        raise ValidationError({'status': f"Status must be one of: {', '.join(sorted(VERDICTS))}"})

    with transaction.atomic():
        design = get_design(design_id, lock=True)
        require_role(design, user, APPROVE_ROLES, 'submit approvals')

        approval, created = DesignApproval.objects.update_or_create(
            design=design,
            user=user,
            defaults={
                'status': status,
                'comment': comment or '',
                'design_version': design.version,
            },
        )
        recompute_design_status(design, actor=user, request=request)

    logger.info(f"User {user.username} submitted '{status}' on design {design.pk} v{design.version}")
    create_audit_log(
        request=request,
        user=user,
        action='approval_submit',
        model_name='DesignApproval',
        object_id=approval.id,
        object_name=design.title,
        object_reference=design.reference,
        changes={'status': status, 'comment': approval.comment, 'resubmission': not created},
    )
    return approval
