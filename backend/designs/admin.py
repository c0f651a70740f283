from django.contrib import admin
from .approvals import recompute_design_status
from .models import Annotation, Design, DesignApproval, DesignCollaboration, DesignVersion


class DesignVersionInline(admin.TabularInline):
    model = DesignVersion
    extra = 0
    can_delete = False
    readonly_fields = ['version_number', 'image_url', 'thumbnail_url', 'width', 'height', 'created_by', 'notes', 'created_at']

    def has_add_permission(self, request, obj=None):
        return False


class DesignCollaborationInline(admin.TabularInline):
    model = DesignCollaboration
    extra = 0
    can_delete = False
    fields = ['user', 'role', 'notifications_enabled', 'added_by', 'added_at']
    readonly_fields = ['user', 'added_by', 'added_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Design)
class DesignAdmin(admin.ModelAdmin):
    list_display = ['title', 'project', 'version', 'status', 'created_by', 'updated_at']
    list_filter = ['status', 'created_at']
    search_fields = ['title', 'description']
    ordering = ['-updated_at']
    readonly_fields = ['version', 'status', 'created_at', 'updated_at']
    inlines = [DesignVersionInline, DesignCollaborationInline]

    def has_add_permission(self, request):
        # Designs are created through the API together with version 1 and the owner row
        return False

    def save_related(self, request, form, formsets, change):
        super().save_related(request, form, formsets, change)
        # Role edits in the collaborator inline change the reviewer set
        recompute_design_status(form.instance, actor=request.user, request=request)


@admin.register(Annotation)
class AnnotationAdmin(admin.ModelAdmin):
    list_display = ['id', 'design', 'user', 'shape', 'resolved', 'resolved_by', 'created_at']
    list_filter = ['resolved', 'shape', 'created_at']
    search_fields = ['content', 'design__title', 'user__username']
    readonly_fields = ['resolved', 'resolved_by', 'resolved_at', 'resolved_note', 'replies', 'created_at', 'updated_at']


@admin.register(DesignApproval)
class DesignApprovalAdmin(admin.ModelAdmin):
    list_display = ['design', 'user', 'status', 'design_version', 'updated_at']
    list_filter = ['status', 'updated_at']
    search_fields = ['design__title', 'user__username', 'comment']
    readonly_fields = ['design', 'user', 'status', 'design_version', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False
