"""
Test suite for core module
Tests: authentication, profile, audit logs, error mapping and design cache helpers
"""
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from rest_framework import status

from backend.core.cache_utils import (
    cache_design_data, get_cached_design, get_design_cache_key, invalidate_design_cache,
)
from backend.core.exceptions import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError, api_exception_handler,
)
from backend.core.models import AuditLog
from backend.core.test_utils import AuthenticatedAPIClient, CacheResetTestCase, TestDataFactory
from backend.core.utils import create_audit_log


class AuthenticationTests(CacheResetTestCase):
    """Test register, login and profile endpoints"""

    def setUp(self):
        super().setUp()
        self.client = AuthenticatedAPIClient()

    def test_register(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'mara',
            'email': 'mara@studio.test',
            'password': 'Sketchbook!2024',
            'password_confirm': 'Sketchbook!2024',
            'full_name': 'Mara Lind',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['display_name'], 'Mara Lind')

    def test_register_password_mismatch(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'mara',
            'password': 'Sketchbook!2024',
            'password_confirm': 'Sketchbook!2025',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_login(self):
        user = TestDataFactory.create_user(password='Wireframe#77')
        response = self.client.post('/api/v1/auth/login/', {
            'username': user.username,
            'password': 'Wireframe#77',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_login_wrong_password(self):
        user = TestDataFactory.create_user(password='Wireframe#77')
        response = self.client.post('/api/v1/auth/login/', {
            'username': user.username,
            'password': 'nope',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me(self):
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], user.username)

    def test_me_update_ignores_read_only_fields(self):
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        response = self.client.patch('/api/v1/auth/me/', {
            'company': 'Northwind Studio',
            'is_staff': True,
            'is_active': False,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.company, 'Northwind Studio')
        self.assertFalse(user.is_staff)
        self.assertTrue(user.is_active)

    def test_user_list_requires_staff(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(TestDataFactory.create_user(is_staff=True))
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class AuditLogTests(CacheResetTestCase):

    def setUp(self):
        super().setUp()
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_audit_log(self):
        log = create_audit_log(user=self.user, action='design_update', model_name='Design',
                               object_id=5, changes={'title': 'New'})
        self.assertEqual(log.object_id, '5')
        self.assertEqual(log.user, self.user)
        self.assertIsNone(log.ip_address)

    def test_missing_fields_skip_entry(self):
        self.assertIsNone(create_audit_log(user=self.user, action='design_update'))
        self.assertFalse(AuditLog.objects.exists())

    def test_users_only_see_their_entries(self):
        create_audit_log(user=self.user, action='design_create', model_name='Design', object_id=1)
        create_audit_log(user=self.other, action='design_create', model_name='Design', object_id=2)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([entry['object_id'] for entry in response.data], ['1'])

    def test_filter_by_action(self):
        create_audit_log(user=self.user, action='design_create', model_name='Design', object_id=1)
        create_audit_log(user=self.user, action='annotation_create', model_name='Annotation', object_id=3)
        response = self.client.get('/api/v1/audit-logs/?action=annotation_create')
        self.assertEqual([entry['model_name'] for entry in response.data], ['Annotation'])

    def test_detail_of_other_users_entry_forbidden(self):
        log = create_audit_log(user=self.other, action='design_create', model_name='Design', object_id=2)
        response = self.client.get(f'/api/v1/audit-logs/{log.pk}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ExceptionHandlerTests(CacheResetTestCase):
    """Domain errors map onto HTTP statuses"""

    def handle(self, exc):
        return api_exception_handler(exc, {'view': None})

    def test_validation_error(self):
        response = self.handle(ValidationError({'title': 'Required'}))
        self.assertEqual(response.status_code, 400)
        self.assertIn('title', response.data)

    def test_authorization_error(self):
        response = self.handle(AuthorizationError("Role 'viewer' cannot submit approvals."))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'forbidden')

    def test_not_found_error(self):
        response = self.handle(NotFoundError('Design 9 not found'))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'error': 'Design 9 not found', 'code': 'not_found'})

    def test_conflict_error(self):
        response = self.handle(ConflictError())
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'conflict')

    def test_unhandled_error_passes_through(self):
        self.assertIsNone(self.handle(RuntimeError('boom')))


class DesignCacheTests(CacheResetTestCase):

    def test_cache_round_trip_and_invalidate(self):
        cache_design_data(7, {'id': 7, 'status': 'draft'})
        self.assertEqual(get_cached_design(7), {'id': 7, 'status': 'draft'})
        invalidate_design_cache(7)
        self.assertIsNone(get_cached_design(7))

    def test_clear_design_cache_command(self):
        cache_design_data(3, {'id': 3})
        out = StringIO()
        call_command('clear_design_cache', stdout=out)
        self.assertIsNone(cache.get(get_design_cache_key(3)))
        self.assertIn('Cleared design cache', out.getvalue())
