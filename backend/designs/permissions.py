"""
Collaborator roles on a design and the guards built on them.

    owner     everything, including managing collaborators
    editor    edit metadata, publish versions, approve, moderate annotations
    reviewer  annotate and approve; counted as a required reviewer
    viewer    annotate and reply only
"""
import logging

from django.db import transaction

from backend.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from backend.core.models import User
from backend.core.utils import create_audit_log

from .models import Design, DesignCollaboration

logger = logging.getLogger(__name__)

ROLE = DesignCollaboration
ALL_ROLES = frozenset(role for role, _ in DesignCollaboration.ROLE_CHOICES)
MANAGE_ROLES = frozenset({ROLE.ROLE_OWNER, ROLE.ROLE_EDITOR})
APPROVE_ROLES = frozenset({ROLE.ROLE_OWNER, ROLE.ROLE_EDITOR, ROLE.ROLE_REVIEWER})


def get_design(design_id, lock=False):
    """Fetch a design or raise NotFoundError; ``lock`` takes a row lock"""
    queryset = Design.objects.select_for_update() if lock else Design.objects
    try:
        return queryset.get(pk=design_id)
    except (Design.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f'Design {design_id} not found')


def get_role(design, user):
    """Return the user's collaborator role on the design, or None"""
    if user is None or not user.is_authenticated:
        return None
    return (
        DesignCollaboration.objects
        .filter(design=design, user=user)
        .values_list('role', flat=True)
        .first()
    )


def require_role(design, user, allowed_roles, action):
    """Raise AuthorizationError unless the user holds one of ``allowed_roles``"""
    role = get_role(design, user)
    if role not in allowed_roles:
        logger.warning(f"User {getattr(user, 'username', user)} with role {role!r} denied '{action}' on design {design.pk}")
        if role is None:
            raise AuthorizationError(f'You are not a collaborator on design {design.pk}.')
        raise AuthorizationError(f"Role '{role}' cannot {action}.")
    return role


def reviewer_ids(design):
    """Ids of the design's required reviewers"""
    return set(
        DesignCollaboration.objects
        .filter(design=design, role=ROLE.ROLE_REVIEWER)
        .values_list('user_id', flat=True)
    )


def add_collaborator(design_id, acting_user, user_id, role=ROLE.ROLE_VIEWER, notifications_enabled=True, request=None):
    """
    Add a collaborator to a design or change an existing collaborator's role.

    Only owners may manage collaborators. The reviewer set feeds the aggregate
    status, so the status is recomputed in the same transaction.
    """
    from .approvals import recompute_design_status

    if role not in ALL_ROLES:
        raise ValidationError({'role': f"Role must be one of: {', '.join(sorted(ALL_ROLES))}"})

    with transaction.atomic():
        design = get_design(design_id, lock=True)
        require_role(design, acting_user, {ROLE.ROLE_OWNER}, 'manage collaborators')

        try:
            user = User.objects.get(pk=user_id)
        except (User.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f'User {user_id} not found')

        if user.pk == design.created_by_id and role != ROLE.ROLE_OWNER:
            raise ValidationError({'role': 'The design creator always remains an owner'})

        collaboration, created = DesignCollaboration.objects.update_or_create(
            design=design,
            user=user,
            defaults={
                'role': role,
                'notifications_enabled': notifications_enabled,
            },
            create_defaults={
                'role': role,
                'notifications_enabled': notifications_enabled,
                'added_by': acting_user,
            },
        )
        recompute_design_status(design, actor=acting_user, request=request)

    logger.info(f"{'Added' if created else 'Updated'} collaborator {user.username} as {role} on design {design.pk}")
    create_audit_log(
        request=request,
        user=acting_user,
        action='collaborator_change',
        model_name='DesignCollaboration',
        object_id=collaboration.id,
        object_name=design.title,
        object_reference=design.reference,
        changes={'user_id': user.pk, 'role': role, 'created': created},
    )
    return collaboration
