import backend.designs.models
import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('projects', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Design',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('image_url', models.URLField(max_length=2000)),
                ('thumbnail_url', models.URLField(blank=True, max_length=2000, null=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('in-review', 'In Review'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='draft', max_length=20)),
                ('width', models.PositiveIntegerField(blank=True, null=True)),
                ('height', models.PositiveIntegerField(blank=True, null=True)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='designs', to=settings.AUTH_USER_MODEL)),
                ('project', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='designs', to='projects.project')),
            ],
            options={
                'db_table': 'designs',
                'ordering': ['-updated_at'],
                'indexes': [
                    models.Index(fields=['project', 'status'], name='idx_design_project_status'),
                    models.Index(fields=['created_by'], name='idx_design_created_by'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DesignVersion',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('version_number', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('image_url', models.URLField(max_length=2000)),
                ('thumbnail_url', models.URLField(blank=True, max_length=2000, null=True)),
                ('notes', models.TextField(blank=True)),
                ('width', models.PositiveIntegerField(blank=True, null=True)),
                ('height', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='design_versions', to=settings.AUTH_USER_MODEL)),
                ('design', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='versions', to='designs.design')),
            ],
            options={
                'db_table': 'design_versions',
                'ordering': ['design', 'version_number'],
                'constraints': [
                    models.UniqueConstraint(fields=('design', 'version_number'), name='uniq_design_version_number'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Annotation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('content', models.TextField()),
                ('x', models.PositiveIntegerField()),
                ('y', models.PositiveIntegerField()),
                ('width', models.PositiveIntegerField(default=150, validators=[django.core.validators.MinValueValidator(1)])),
                ('height', models.PositiveIntegerField(default=80, validators=[django.core.validators.MinValueValidator(1)])),
                ('color', models.CharField(default='#FF5733', max_length=7, validators=[backend.designs.models.hex_color_validator])),
                ('shape', models.CharField(choices=[('rectangle', 'Rectangle'), ('circle', 'Circle'), ('arrow', 'Arrow'), ('freeform', 'Freeform')], default='rectangle', max_length=20)),
                ('path_data', models.TextField(blank=True, null=True)),
                ('resolved', models.BooleanField(default=False)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('resolved_note', models.TextField(blank=True, null=True)),
                ('replies', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('design', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='annotations', to='designs.design')),
                ('resolved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='resolved_annotations', to=settings.AUTH_USER_MODEL)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='annotations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'annotations',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['design', 'resolved'], name='idx_annotation_design_resolved'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(models.Q(('resolved', True), ('resolved_at__isnull', False), ('resolved_by__isnull', False)), models.Q(('resolved', False), ('resolved_at__isnull', True), ('resolved_by__isnull', True)), _connector='OR'), name='annotation_resolution_consistent'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DesignApproval',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('approved', 'Approved'), ('rejected', 'Rejected'), ('needs-changes', 'Needs Changes')], max_length=20)),
                ('comment', models.TextField(blank=True)),
                ('design_version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('design', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='approvals', to='designs.design')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='design_approvals', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'design_approvals',
                'ordering': ['-updated_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('design', 'user'), name='uniq_design_approval_per_user'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DesignCollaboration',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('owner', 'Owner'), ('editor', 'Editor'), ('reviewer', 'Reviewer'), ('viewer', 'Viewer')], default='viewer', max_length=20)),
                ('added_at', models.DateTimeField(auto_now_add=True)),
                ('notifications_enabled', models.BooleanField(default=True)),
                ('added_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='added_collaborations', to=settings.AUTH_USER_MODEL)),
                ('design', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='collaborations', to='designs.design')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='design_collaborations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'design_collaboration',
                'ordering': ['added_at', 'id'],
                'constraints': [
                    models.UniqueConstraint(fields=('design', 'user'), name='uniq_design_collaborator'),
                ],
            },
        ),
    ]
