from rest_framework import serializers
from backend.core.serializers import UserSummarySerializer
from .models import Annotation, Design, DesignApproval, DesignCollaboration, DesignVersion
from .versions import dimensions_changed

# Fields that only versions and approvals may change on a design
DERIVED_DESIGN_FIELDS = ('status', 'version', 'image_url', 'thumbnail_url', 'width', 'height')


class DesignSerializer(serializers.ModelSerializer):
    created_by = UserSummarySerializer(read_only=True)
    project_id = serializers.IntegerField(required=False, allow_null=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=100), required=False)
    notes = serializers.CharField(write_only=True, required=False, allow_blank=True)
    open_annotation_count = serializers.SerializerMethodField()

    class Meta:
        model = Design
        fields = ['id', 'title', 'description', 'image_url', 'thumbnail_url', 'version', 'status',
                  'project_id', 'created_by', 'width', 'height', 'tags', 'notes',
                  'open_annotation_count', 'created_at', 'updated_at']
        read_only_fields = ['version', 'status', 'created_at', 'updated_at']

    def get_open_annotation_count(self, obj):
        return obj.annotations.filter(resolved=False).count()


class DesignUpdateSerializer(serializers.ModelSerializer):
    """Metadata edits; image, dimensions and status change only through versions and approvals"""
    project_id = serializers.IntegerField(required=False, allow_null=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=100), required=False)

    class Meta:
        model = Design
        fields = ['title', 'description', 'project_id', 'tags']

    def validate(self, attrs):
        blocked = sorted(field for field in DERIVED_DESIGN_FIELDS if field in self.initial_data)
        if blocked:
            raise serializers.ValidationError({
                field: 'This field is derived and cannot be set directly.' for field in blocked
            })
        return attrs


class DesignVersionSerializer(serializers.ModelSerializer):
    created_by = UserSummarySerializer(read_only=True)
    dimensions_changed = serializers.SerializerMethodField()

    class Meta:
        model = DesignVersion
        fields = ['id', 'design', 'version_number', 'image_url', 'thumbnail_url', 'created_by',
                  'notes', 'width', 'height', 'dimensions_changed', 'created_at']
        read_only_fields = fields

    def get_dimensions_changed(self, obj):
        return dimensions_changed(obj)


class PublishVersionSerializer(serializers.Serializer):
    image_url = serializers.URLField(max_length=2000)
    thumbnail_url = serializers.URLField(max_length=2000, required=False, allow_null=True)
    width = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    height = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if (attrs.get('width') is None) != (attrs.get('height') is None):
            raise serializers.ValidationError('Width and height must be provided together')
        return attrs


class ReplySerializer(serializers.Serializer):
    author_id = serializers.IntegerField()
    content = serializers.CharField()
    created_at = serializers.CharField()


class AnnotationSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)
    resolved_by = UserSummarySerializer(read_only=True)
    replies = ReplySerializer(many=True, read_only=True)

    class Meta:
        model = Annotation
        fields = ['id', 'design', 'user', 'content', 'x', 'y', 'width', 'height', 'color', 'shape',
                  'path_data', 'resolved', 'resolved_by', 'resolved_at', 'resolved_note', 'replies',
                  'created_at', 'updated_at']
        read_only_fields = fields


class AnnotationCreateSerializer(serializers.Serializer):
    content = serializers.CharField()
    x = serializers.IntegerField(min_value=0)
    y = serializers.IntegerField(min_value=0)
    width = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    height = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    color = serializers.RegexField(r'^#[0-9A-Fa-f]{6}$', required=False, allow_null=True)
    shape = serializers.ChoiceField(choices=Annotation.SHAPE_CHOICES, default=Annotation.SHAPE_RECTANGLE)
    path_data = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AnnotationActionSerializer(serializers.Serializer):
    """PATCH payload for an annotation: one workflow action per request"""
    ACTION_CHOICES = ['reply', 'resolve', 'reopen', 'update']

    action = serializers.ChoiceField(choices=ACTION_CHOICES)
    content = serializers.CharField(required=False, allow_blank=True)
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    x = serializers.IntegerField(min_value=0, required=False)
    y = serializers.IntegerField(min_value=0, required=False)
    width = serializers.IntegerField(min_value=1, required=False)
    height = serializers.IntegerField(min_value=1, required=False)
    color = serializers.RegexField(r'^#[0-9A-Fa-f]{6}$', required=False)
    shape = serializers.ChoiceField(choices=Annotation.SHAPE_CHOICES, required=False)
    path_data = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if attrs['action'] == 'reply' and not (attrs.get('content') or '').strip():
            raise serializers.ValidationError({'content': 'Reply content is required'})
        return attrs

    def get_changes(self):
        """Editable fields present in an 'update' payload"""
        return {
            field: value for field, value in self.validated_data.items()
            if field not in ('action', 'note')
        }


class DesignApprovalSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)
    is_current = serializers.SerializerMethodField()

    class Meta:
        model = DesignApproval
        fields = ['id', 'design', 'user', 'status', 'comment', 'design_version', 'is_current',
                  'created_at', 'updated_at']
        read_only_fields = fields

    def get_is_current(self, obj):
        return obj.design_version == obj.design.version


class SubmitApprovalSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DesignApproval.STATUS_CHOICES)
    comment = serializers.CharField(required=False, allow_blank=True, default='')


class DesignCollaborationSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)
    added_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = DesignCollaboration
        fields = ['id', 'design', 'user', 'role', 'added_by', 'added_at', 'notifications_enabled']
        read_only_fields = fields


class AddCollaboratorSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    role = serializers.ChoiceField(choices=DesignCollaboration.ROLE_CHOICES, default=DesignCollaboration.ROLE_VIEWER)
    notifications_enabled = serializers.BooleanField(default=True)
