"""
Test suite for projects module
Tests: project visibility, creation and ownership checks
"""
from rest_framework import status

from backend.core.test_utils import AuthenticatedAPIClient, CacheResetTestCase, TestDataFactory


class ProjectAPITests(CacheResetTestCase):

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()
        self.member = TestDataFactory.create_user()
        self.outsider = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def test_create_project(self):
        response = self.client.post('/api/v1/projects/', {
            'name': 'Spring campaign',
            'status': 'planning',
            'members': [self.member.id],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created_by']['id'], self.owner.id)
        self.assertEqual(response.data['members'], [self.member.id])
        self.assertEqual(response.data['design_count'], 0)

    def test_progress_above_100_rejected(self):
        response = self.client.post('/api/v1/projects/', {'name': 'Overdone', 'progress': 150}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('progress', response.data)

    def test_list_visible_projects(self):
        mine = TestDataFactory.create_project(self.owner)
        shared = TestDataFactory.create_project(self.outsider)
        shared.members.add(self.owner)
        TestDataFactory.create_project(self.outsider)

        response = self.client.get('/api/v1/projects/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({p['id'] for p in response.data}, {mine.id, shared.id})

    def test_status_filter(self):
        TestDataFactory.create_project(self.owner, status='active')
        done = TestDataFactory.create_project(self.owner, status='completed')
        response = self.client.get('/api/v1/projects/?status=completed')
        self.assertEqual([p['id'] for p in response.data], [done.id])

    def test_design_count(self):
        project = TestDataFactory.create_project(self.owner)
        TestDataFactory.create_design(self.owner, project=project)
        response = self.client.get(f'/api/v1/projects/{project.id}/')
        self.assertEqual(response.data['design_count'], 1)

    def test_member_cannot_update(self):
        project = TestDataFactory.create_project(self.owner)
        project.members.add(self.member)
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.member)
        response = client.patch(f'/api/v1/projects/{project.id}/', {'progress': 50}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_creator_updates_project(self):
        project = TestDataFactory.create_project(self.owner)
        response = self.client.patch(f'/api/v1/projects/{project.id}/', {'progress': 40, 'status': 'on-hold'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        project.refresh_from_db()
        self.assertEqual(project.progress, 40)
        self.assertEqual(project.status, 'on-hold')

    def test_hidden_project_is_not_found(self):
        project = TestDataFactory.create_project(self.outsider)
        response = self.client.get(f'/api/v1/projects/{project.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
