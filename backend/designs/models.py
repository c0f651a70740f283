from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Q
from backend.core.models import User
from backend.projects.models import Project


hex_color_validator = RegexValidator(
    regex=r'^#[0-9A-Fa-f]{6}$',
    message='Color must be a hex code like #FF5733',
)


class Design(models.Model):
    """A reviewable image under version control"""
    STATUS_DRAFT = 'draft'
    STATUS_IN_REVIEW = 'in-review'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_IN_REVIEW, 'In Review'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    image_url = models.URLField(max_length=2000)
    thumbnail_url = models.URLField(max_length=2000, blank=True, null=True)
    # Derived fields: maintained by versions.publish_version and approvals.recompute_design_status
    version = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    project = models.ForeignKey(Project, on_delete=models.PROTECT, related_name='designs', null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='designs')
    width = models.PositiveIntegerField(null=True, blank=True)
    height = models.PositiveIntegerField(null=True, blank=True)
    tags = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    @property
    def reference(self):
        return f"Design #{self.pk} v{self.version}"

    def clean(self):
        if not isinstance(self.tags, list) or not all(isinstance(tag, str) for tag in self.tags):
            raise ValidationError({'tags': 'Tags must be a list of strings'})

    class Meta:
        db_table = 'designs'
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['project', 'status'], name='idx_design_project_status'),
            models.Index(fields=['created_by'], name='idx_design_created_by'),
        ]


class DesignVersion(models.Model):
    """Immutable snapshot of a design's image; one row per published version"""
    design = models.ForeignKey(Design, on_delete=models.PROTECT, related_name='versions')
    version_number = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    image_url = models.URLField(max_length=2000)
    thumbnail_url = models.URLField(max_length=2000, blank=True, null=True)
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='design_versions')
    notes = models.TextField(blank=True)
    width = models.PositiveIntegerField(null=True, blank=True)
    height = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.design_id} v{self.version_number}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError('Design versions are immutable once created')
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'design_versions'
        ordering = ['design', 'version_number']
        constraints = [
            models.UniqueConstraint(fields=['design', 'version_number'], name='uniq_design_version_number'),
        ]


class Annotation(models.Model):
    """A pinned comment or shape anchored to design coordinates"""
    SHAPE_RECTANGLE = 'rectangle'
    SHAPE_CIRCLE = 'circle'
    SHAPE_ARROW = 'arrow'
    SHAPE_FREEFORM = 'freeform'

    SHAPE_CHOICES = [
        (SHAPE_RECTANGLE, 'Rectangle'),
        (SHAPE_CIRCLE, 'Circle'),
        (SHAPE_ARROW, 'Arrow'),
        (SHAPE_FREEFORM, 'Freeform'),
    ]

    DEFAULT_WIDTH = 150
    DEFAULT_HEIGHT = 80
    DEFAULT_COLOR = '#FF5733'

    design = models.ForeignKey(Design, on_delete=models.PROTECT, related_name='annotations')
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='annotations')
    content = models.TextField()
    x = models.PositiveIntegerField()
    y = models.PositiveIntegerField()
    width = models.PositiveIntegerField(default=DEFAULT_WIDTH, validators=[MinValueValidator(1)])
    height = models.PositiveIntegerField(default=DEFAULT_HEIGHT, validators=[MinValueValidator(1)])
    color = models.CharField(max_length=7, default=DEFAULT_COLOR, validators=[hex_color_validator])
    shape = models.CharField(max_length=20, choices=SHAPE_CHOICES, default=SHAPE_RECTANGLE)
    path_data = models.TextField(null=True, blank=True)
    resolved = models.BooleanField(default=False)
    resolved_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='resolved_annotations', null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolved_note = models.TextField(null=True, blank=True)
    replies = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Annotation {self.pk} on design {self.design_id}"

    def clean(self):
        errors = {}
        if not (self.content or '').strip():
            errors['content'] = 'Annotation content cannot be empty'
        if self.shape == self.SHAPE_FREEFORM and not (self.path_data or '').strip():
            errors['path_data'] = 'Freeform annotations require path data'
        if self.resolved and (self.resolved_by_id is None or self.resolved_at is None):
            errors['resolved'] = 'Resolved annotations must record who resolved them and when'
        if not self.resolved and (self.resolved_by_id is not None or self.resolved_at is not None):
            errors['resolved'] = 'Open annotations cannot carry resolution details'
        if errors:
            raise ValidationError(errors)

    class Meta:
        db_table = 'annotations'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['design', 'resolved'], name='idx_annotation_design_resolved'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(resolved=True, resolved_by__isnull=False, resolved_at__isnull=False)
                    | Q(resolved=False, resolved_by__isnull=True, resolved_at__isnull=True)
                ),
                name='annotation_resolution_consistent',
            ),
        ]


class DesignApproval(models.Model):
    """A collaborator's current verdict on a design"""
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_NEEDS_CHANGES = 'needs-changes'

    STATUS_CHOICES = [
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_NEEDS_CHANGES, 'Needs Changes'),
    ]

    design = models.ForeignKey(Design, on_delete=models.PROTECT, related_name='approvals')
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='design_approvals')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES)
    comment = models.TextField(blank=True)
    # Design version the verdict was cast on; older verdicts are stale
    design_version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user_id} {self.status} design {self.design_id}"

    class Meta:
        db_table = 'design_approvals'
        ordering = ['-updated_at']
        constraints = [
            models.UniqueConstraint(fields=['design', 'user'], name='uniq_design_approval_per_user'),
        ]


class DesignCollaboration(models.Model):
    """Who may see, annotate and approve a design"""
    ROLE_OWNER = 'owner'
    ROLE_EDITOR = 'editor'
    ROLE_REVIEWER = 'reviewer'
    ROLE_VIEWER = 'viewer'

    ROLE_CHOICES = [
        (ROLE_OWNER, 'Owner'),
        (ROLE_EDITOR, 'Editor'),
        (ROLE_REVIEWER, 'Reviewer'),
        (ROLE_VIEWER, 'Viewer'),
    ]

    design = models.ForeignKey(Design, on_delete=models.PROTECT, related_name='collaborations')
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='design_collaborations')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_VIEWER)
    added_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='added_collaborations')
    added_at = models.DateTimeField(auto_now_add=True)
    notifications_enabled = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.user_id} {self.role} on design {self.design_id}"

    class Meta:
        db_table = 'design_collaboration'
        ordering = ['added_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['design', 'user'], name='uniq_design_collaborator'),
        ]
