"""
Design creation and version publishing.

Version numbers start at 1 and have no gaps; ``Design.version`` always
mirrors the newest ``DesignVersion``. Annotation anchors are stored in the
coordinate space of the version they were drawn on and are never moved when
a new version is published; ``dimensions_changed`` lets clients warn about
possible misalignment.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Max

from backend.core.exceptions import ConflictError, NotFoundError, ValidationError
from backend.core.utils import create_audit_log
from backend.projects.models import Project

from .approvals import recompute_design_status
from .models import Design, DesignCollaboration, DesignVersion
from .permissions import MANAGE_ROLES, get_design, require_role
from .signals import emit_on_commit, version_published

logger = logging.getLogger(__name__)


def _full_clean(instance, exclude=None):
    try:
        instance.full_clean(exclude=exclude)
    except DjangoValidationError as e:
        raise ValidationError(e.message_dict)


def _check_project(project_id, user):
    """Raise NotFoundError unless the project exists and the user can see it"""
    if project_id is None:
        return
    project = Project.objects.filter(pk=project_id).first()
    if project is None or not (user.is_staff or project.has_member(user)):
        raise NotFoundError(f'Project {project_id} not found')


def create_design(user, data, request=None):
    """
    Create a design in ``draft`` together with version 1 and an owner
    collaboration for its creator.
    """
    project_id = data.get('project_id')
    _check_project(project_id, user)

    design = Design(
        title=data.get('title'),
        description=data.get('description') or '',
        image_url=data.get('image_url'),
        thumbnail_url=data.get('thumbnail_url'),
        project_id=project_id,
        created_by=user,
        width=data.get('width'),
        height=data.get('height'),
        tags=data.get('tags') or [],
        version=1,
        status=Design.STATUS_DRAFT,
    )
    _full_clean(design)

    with transaction.atomic():
        design.save()
        DesignVersion.objects.create(
            design=design,
            version_number=1,
            image_url=design.image_url,
            thumbnail_url=design.thumbnail_url,
            created_by=user,
            notes=data.get('notes') or '',
            width=design.width,
            height=design.height,
        )
        DesignCollaboration.objects.create(
            design=design,
            user=user,
            role=DesignCollaboration.ROLE_OWNER,
            added_by=user,
        )

    logger.info(f"Design '{design.title}' ({design.pk}) created by {user.username}")
    create_audit_log(
        request=request,
        user=user,
        action='design_create',
        model_name='Design',
        object_id=design.pk,
        object_name=design.title,
        object_reference=design.reference,
        changes={'image_url': design.image_url, 'project_id': project_id},
    )
    return design


def update_design(design_id, user, changes, request=None):
    """Edit design metadata (owner/editor); image and status are not touched"""
    with transaction.atomic():
        design = get_design(design_id, lock=True)
        require_role(design, user, MANAGE_ROLES, 'edit design details')

        if 'project_id' in changes:
            _check_project(changes['project_id'], user)

        for field, value in changes.items():
            setattr(design, field, value)
        _full_clean(design)
        design.save()

    logger.info(f"Design {design.pk} updated by {user.username}: {sorted(changes)}")
    create_audit_log(
        request=request,
        user=user,
        action='design_update',
        model_name='Design',
        object_id=design.pk,
        object_name=design.title,
        object_reference=design.reference,
        changes={field: str(value) for field, value in changes.items()},
    )
    return design


def publish_version(design_id, image_url, dims=None, notes='', user=None, thumbnail_url=None, request=None):
    """
    Publish a new image version of a design.

    ``dims`` is an optional ``(width, height)`` pair. The next version number
    is assigned while the design row is locked; a unique-constraint collision
    means another writer got there first and surfaces as ConflictError. The
    new version invalidates every verdict cast on earlier versions, so the
    aggregate status is recomputed in the same transaction.
    """
    width, height = dims if dims else (None, None)

    try:
        with transaction.atomic():
            design = get_design(design_id, lock=True)
            require_role(design, user, MANAGE_ROLES, 'publish versions')

            current_max = design.versions.aggregate(max_number=Max('version_number'))['max_number'] or 0
            version = DesignVersion(
                design=design,
                version_number=current_max + 1,
                image_url=image_url,
                thumbnail_url=thumbnail_url,
                created_by=user,
                notes=notes or '',
                width=width,
                height=height,
            )
            _full_clean(version, exclude=['design', 'created_by'])
            version.save()

            design.image_url = version.image_url
            design.thumbnail_url = version.thumbnail_url
            design.width = version.width
            design.height = version.height
            design.version = version.version_number
            design.save(update_fields=['image_url', 'thumbnail_url', 'width', 'height', 'version', 'updated_at'])

            recompute_design_status(design, actor=user, request=request)
    except IntegrityError as e:
        logger.warning(f"Version number collision publishing design {design_id}: {e}")
        raise ConflictError('Another version was published concurrently. Reload and retry.')

    logger.info(f"Published v{version.version_number} of design {design.pk} by {user.username}")
    create_audit_log(
        request=request,
        user=user,
        action='version_publish',
        model_name='DesignVersion',
        object_id=version.pk,
        object_name=design.title,
        object_reference=design.reference,
        changes={
            'version_number': version.version_number,
            'image_url': version.image_url,
            'width': width,
            'height': height,
            'dimensions_changed': dimensions_changed(version),
        },
    )
    emit_on_commit(version_published, DesignVersion, design, actor=user, version=version)
    return version


def previous_version(version):
    return (
        DesignVersion.objects
        .filter(design_id=version.design_id, version_number=version.version_number - 1)
        .first()
    )


def dimensions_changed(version):
    """True when ``version`` has different dimensions than its predecessor"""
    previous = previous_version(version)
    if previous is None:
        return False
    return (previous.width, previous.height) != (version.width, version.height)
