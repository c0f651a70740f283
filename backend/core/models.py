from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Extended user model with profile fields shown on review threads"""
    full_name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    company = models.CharField(max_length=255, blank=True)
    avatar = models.URLField(max_length=1000, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def get_display_name(self):
        return self.full_name or self.get_full_name() or self.username

    class Meta:
        db_table = 'users'


class AuditLog(models.Model):
    """Audit log for design review operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('design_create', 'Design Created'),
        ('design_update', 'Design Updated'),
        ('design_status_change', 'Design Status Changed'),
        ('version_publish', 'Version Published'),
        ('annotation_create', 'Annotation Created'),
        ('annotation_update', 'Annotation Updated'),
        ('annotation_reply', 'Annotation Reply'),
        ('annotation_resolve', 'Annotation Resolved'),
        ('annotation_reopen', 'Annotation Reopened'),
        ('approval_submit', 'Approval Submitted'),
        ('collaborator_change', 'Collaborator Changed'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., design title)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., 'Design #12 v3')")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_a1c4e0_idx'),
            models.Index(fields=['action'], name='audit_logs_action_5b2f7d_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_8e3a91_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_object__c7d214_idx'),
        ]
