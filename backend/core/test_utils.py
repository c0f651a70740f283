"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.designs.models import Design, DesignCollaboration
from backend.designs.versions import create_design
from backend.projects.models import Project
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )

    @staticmethod
    def create_project(user, name=None, status='active'):
        """Create a test project"""
        if not name:
            name = f'Project_{TestDataFactory.random_string(6)}'
        return Project.objects.create(
            name=name,
            description=f'Test project {name}',
            status=status,
            created_by=user
        )

    @staticmethod
    def create_design(user, title=None, project=None, width=1200, height=800, tags=None):
        """Create a test design (version 1, creator as owner)"""
        if not title:
            title = f'Design_{TestDataFactory.random_string(6)}'
        return create_design(user, {
            'title': title,
            'image_url': f'https://blobs.example.com/{title}/v1.png',
            'thumbnail_url': f'https://blobs.example.com/{title}/v1-thumb.png',
            'project_id': project.id if project else None,
            'width': width,
            'height': height,
            'tags': tags or [],
        })

    @staticmethod
    def add_collaborator(design, user, role='viewer', added_by=None, notifications_enabled=True):
        """Attach a collaborator directly, bypassing the owner check"""
        return DesignCollaboration.objects.create(
            design=design,
            user=user,
            role=role,
            added_by=added_by or design.created_by,
            notifications_enabled=notifications_enabled
        )

    @staticmethod
    def reload(design):
        return Design.objects.get(pk=design.pk)


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()


class CacheResetTestCase(TestCase):
    """TestCase that starts every test with an empty cache"""

    def setUp(self):
        super().setUp()
        cache.clear()
