from rest_framework import serializers
from backend.core.models import User
from backend.core.serializers import UserSummarySerializer
from .models import Project


class ProjectSerializer(serializers.ModelSerializer):
    created_by = UserSummarySerializer(read_only=True)
    members = serializers.PrimaryKeyRelatedField(queryset=User.objects.all(), many=True, required=False)
    design_count = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = ['id', 'name', 'description', 'status', 'progress', 'due_date', 'created_by',
                  'members', 'design_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_design_count(self, obj):
        return obj.designs.count()
