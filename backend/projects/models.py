from django.core.validators import MaxValueValidator
from django.db import models
from backend.core.models import User


class Project(models.Model):
    """Projects group designs and tasks for a team"""
    STATUS_CHOICES = [
        ('planning', 'Planning'),
        ('active', 'Active'),
        ('on-hold', 'On Hold'),
        ('completed', 'Completed'),
    ]

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='planning')
    progress = models.PositiveSmallIntegerField(default=0, validators=[MaxValueValidator(100)])
    due_date = models.DateField(null=True, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='created_projects')
    members = models.ManyToManyField(User, related_name='projects', blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def has_member(self, user):
        return self.created_by_id == user.id or self.members.filter(pk=user.pk).exists()

    class Meta:
        db_table = 'projects'
        ordering = ['-created_at']
