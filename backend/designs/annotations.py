"""
Annotation engine: pinned comments and shapes on a design, their reply
threads and the resolve/reopen workflow.

Resolution state always moves as a unit: ``resolved`` is true exactly when
``resolved_by`` and ``resolved_at`` are set. Replies are append-only.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from backend.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from backend.core.utils import create_audit_log

from .models import Annotation
from .permissions import ALL_ROLES, MANAGE_ROLES, get_design, get_role, require_role
from .signals import (
    annotation_created, annotation_reopened, annotation_resolved, emit_on_commit, reply_added,
)

logger = logging.getLogger(__name__)

GEOMETRY_FIELDS = ('x', 'y', 'width', 'height')
EDITABLE_FIELDS = ('content', 'color', 'shape', 'path_data') + GEOMETRY_FIELDS


def _full_clean(annotation):
    try:
        annotation.full_clean(exclude=['design', 'user', 'resolved_by'])
    except DjangoValidationError as e:
        raise ValidationError(e.message_dict)


def _normalize_path_data(shape, path_data):
    if shape == Annotation.SHAPE_FREEFORM:
        if not (path_data or '').strip():
            raise ValidationError({'path_data': 'Freeform annotations require path data'})
        return path_data
    return None


def get_annotation(annotation_id, lock=False):
    """Fetch an annotation with its design or raise NotFoundError"""
    queryset = Annotation.objects.select_related('design')
    if lock:
        queryset = queryset.select_for_update(of=('self',))
    try:
        return queryset.get(pk=annotation_id)
    except (Annotation.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f'Annotation {annotation_id} not found')


def _audit(request, user, action, annotation, changes=None):
    create_audit_log(
        request=request,
        user=user,
        action=action,
        model_name='Annotation',
        object_id=annotation.pk,
        object_name=annotation.design.title,
        object_reference=annotation.design.reference,
        changes=changes,
    )


def create_annotation(design_id, user, geometry, content, shape=Annotation.SHAPE_RECTANGLE,
                      path_data=None, color=None, request=None):
    """
    Pin a new annotation to a design.

    ``geometry`` holds ``x`` and ``y`` and optionally ``width``/``height``.
    Any collaborator may annotate, viewers included.
    """
    design = get_design(design_id)
    require_role(design, user, ALL_ROLES, 'annotate')

    geometry = geometry or {}
    missing = [field for field in ('x', 'y') if geometry.get(field) is None]
    if missing:
        raise ValidationError({field: 'This field is required.' for field in missing})

    annotation = Annotation(
        design=design,
        user=user,
        content=content,
        x=geometry['x'],
        y=geometry['y'],
        width=geometry.get('width') or Annotation.DEFAULT_WIDTH,
        height=geometry.get('height') or Annotation.DEFAULT_HEIGHT,
        color=color or Annotation.DEFAULT_COLOR,
        shape=shape or Annotation.SHAPE_RECTANGLE,
        path_data=_normalize_path_data(shape, path_data),
        resolved=False,
        replies=[],
    )
    _full_clean(annotation)
    annotation.save()

    logger.info(f"User {user.username} annotated design {design.pk} at ({annotation.x}, {annotation.y})")
    _audit(request, user, 'annotation_create', annotation, {'shape': annotation.shape, 'x': annotation.x, 'y': annotation.y})
    emit_on_commit(annotation_created, Annotation, design, actor=user, annotation=annotation)
    return annotation


def add_reply(annotation_id, user, content, request=None):
    """Append a reply to the annotation's thread"""
    content = (content or '').strip()
    if not content:
        raise ValidationError({'content': 'Reply content cannot be empty'})

    with transaction.atomic():
        annotation = get_annotation(annotation_id, lock=True)
        require_role(annotation.design, user, ALL_ROLES, 'reply to annotations')

        reply = {
            'author_id': user.pk,
            'content': content,
            'created_at': timezone.now().isoformat(),
        }
        annotation.replies = list(annotation.replies or []) + [reply]
        annotation.save(update_fields=['replies', 'updated_at'])

    logger.info(f"User {user.username} replied to annotation {annotation.pk}")
    _audit(request, user, 'annotation_reply', annotation, {'reply_index': len(annotation.replies) - 1})
    emit_on_commit(reply_added, Annotation, annotation.design, actor=user, annotation=annotation, reply=reply)
    return annotation


def resolve_annotation(annotation_id, user, note=None, request=None):
    """
    Mark an annotation resolved. Resolving an already resolved annotation
    changes nothing, so duplicate requests are harmless.
    """
    with transaction.atomic():
        annotation = get_annotation(annotation_id, lock=True)
        require_role(annotation.design, user, ALL_ROLES, 'resolve annotations')

        if annotation.resolved:
            logger.debug(f"Annotation {annotation.pk} already resolved by {annotation.resolved_by_id}")
            return annotation

        annotation.resolved = True
        annotation.resolved_by = user
        annotation.resolved_at = timezone.now()
        annotation.resolved_note = note or None
        annotation.save(update_fields=['resolved', 'resolved_by', 'resolved_at', 'resolved_note', 'updated_at'])

    logger.info(f"User {user.username} resolved annotation {annotation.pk}")
    _audit(request, user, 'annotation_resolve', annotation, {'note': annotation.resolved_note})
    emit_on_commit(annotation_resolved, Annotation, annotation.design, actor=user, annotation=annotation)
    return annotation


def can_reopen(annotation, user, role):
    return (
        annotation.user_id == user.pk
        or annotation.resolved_by_id == user.pk
        or role in MANAGE_ROLES
    )


def reopen_annotation(annotation_id, user, request=None):
    """
    Clear an annotation's resolution. Allowed for its author, its resolver and
    design owners/editors.
    """
    with transaction.atomic():
        annotation = get_annotation(annotation_id, lock=True)
        role = require_role(annotation.design, user, ALL_ROLES, 'reopen annotations')
        if not can_reopen(annotation, user, role):
            logger.warning(f"User {user.username} denied reopening annotation {annotation.pk}")
            raise AuthorizationError('Only the author, the resolver or a design owner/editor can reopen this annotation.')

        if not annotation.resolved:
            return annotation

        previous_resolver = annotation.resolved_by_id
        annotation.resolved = False
        annotation.resolved_by = None
        annotation.resolved_at = None
        annotation.resolved_note = None
        annotation.save(update_fields=['resolved', 'resolved_by', 'resolved_at', 'resolved_note', 'updated_at'])

    logger.info(f"User {user.username} reopened annotation {annotation.pk}")
    _audit(request, user, 'annotation_reopen', annotation, {'previous_resolver': previous_resolver})
    emit_on_commit(annotation_reopened, Annotation, annotation.design, actor=user, annotation=annotation)
    return annotation


def update_annotation(annotation_id, user, request=None, **changes):
    """
    Edit an annotation's content, color, shape or geometry. Allowed for its
    author and design owners/editors; resolution state and replies are not
    editable here.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError({field: 'This field cannot be edited.' for field in sorted(unknown)})

    with transaction.atomic():
        annotation = get_annotation(annotation_id, lock=True)
        role = get_role(annotation.design, user)
        if annotation.user_id != user.pk and role not in MANAGE_ROLES:
            logger.warning(f"User {user.username} denied editing annotation {annotation.pk}")
            raise AuthorizationError('Only the author or a design owner/editor can edit this annotation.')

        for field, value in changes.items():
            setattr(annotation, field, value)
        annotation.path_data = _normalize_path_data(annotation.shape, annotation.path_data)
        _full_clean(annotation)
        annotation.save()

    logger.info(f"User {user.username} edited annotation {annotation.pk}: {sorted(changes)}")
    _audit(request, user, 'annotation_update', annotation, {field: str(value) for field, value in changes.items()})
    return annotation
