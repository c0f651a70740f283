"""
Test suite for the design review module
Tests: status aggregation, version publishing, annotation workflow, role checks and API endpoints
"""
from unittest import mock

from django.db.models import Max
from django.test import Client
from django.urls import reverse
from rest_framework import status

from backend.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from backend.core.models import AuditLog
from backend.core.test_utils import AuthenticatedAPIClient, CacheResetTestCase, TestDataFactory
from backend.designs import annotations as engine
from backend.designs import signals
from backend.designs.approvals import aggregate_status, submit_approval
from backend.designs.models import Annotation, Design, DesignApproval, DesignCollaboration, DesignVersion
from backend.designs.permissions import add_collaborator
from backend.designs.versions import create_design, dimensions_changed, publish_version


class AggregateStatusTests(CacheResetTestCase):
    """Pure status derivation from verdicts"""

    def test_all_reviewers_approved(self):
        self.assertEqual(aggregate_status({1: 'approved', 2: 'approved'}, {1, 2}), 'approved')

    def test_any_rejection_wins(self):
        self.assertEqual(aggregate_status({1: 'approved', 2: 'rejected'}, {1, 2}), 'rejected')
        self.assertEqual(aggregate_status({1: 'needs-changes', 2: 'rejected'}, {1, 2}), 'rejected')

    def test_needs_changes_keeps_review_open(self):
        self.assertEqual(aggregate_status({1: 'approved', 2: 'needs-changes'}, {1, 2}), 'in-review')

    def test_missing_vote_keeps_review_open(self):
        self.assertEqual(aggregate_status({1: 'approved'}, {1, 2}), 'in-review')
        self.assertEqual(aggregate_status({}, {1}), 'in-review')

    def test_non_reviewer_votes_ignored_when_reviewers_assigned(self):
        self.assertEqual(aggregate_status({1: 'approved', 3: 'rejected'}, {1}), 'approved')

    def test_without_reviewers_uses_all_voters(self):
        self.assertEqual(aggregate_status({}, set()), 'draft')
        self.assertEqual(aggregate_status({5: 'approved'}, set()), 'approved')
        self.assertEqual(aggregate_status({5: 'approved', 6: 'rejected'}, set()), 'rejected')
        self.assertEqual(aggregate_status({5: 'needs-changes'}, set()), 'in-review')


class DesignCreationTests(CacheResetTestCase):

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()

    def test_new_design_starts_as_draft_version_one(self):
        design = TestDataFactory.create_design(self.owner)
        self.assertEqual(design.status, Design.STATUS_DRAFT)
        self.assertEqual(design.version, 1)
        versions = list(design.versions.values_list('version_number', flat=True))
        self.assertEqual(versions, [1])

    def test_creator_becomes_owner(self):
        design = TestDataFactory.create_design(self.owner)
        collaboration = DesignCollaboration.objects.get(design=design, user=self.owner)
        self.assertEqual(collaboration.role, DesignCollaboration.ROLE_OWNER)

    def test_missing_title_is_validation_error(self):
        with self.assertRaises(ValidationError):
            create_design(self.owner, {'title': '', 'image_url': 'https://blobs.example.com/a.png'})
        self.assertFalse(Design.objects.exists())

    def test_unknown_project_is_not_found(self):
        with self.assertRaises(NotFoundError):
            create_design(self.owner, {
                'title': 'Landing page',
                'image_url': 'https://blobs.example.com/a.png',
                'project_id': 999999,
            })

    def test_creation_is_audited(self):
        design = TestDataFactory.create_design(self.owner)
        self.assertTrue(AuditLog.objects.filter(action='design_create', object_id=str(design.pk)).exists())


class VersionPublishingTests(CacheResetTestCase):

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()
        self.editor = TestDataFactory.create_user()
        self.reviewer = TestDataFactory.create_user()
        self.viewer = TestDataFactory.create_user()
        self.design = TestDataFactory.create_design(self.owner, width=1200, height=800)
        TestDataFactory.add_collaborator(self.design, self.editor, 'editor')
        TestDataFactory.add_collaborator(self.design, self.viewer, 'viewer')

    def publish(self, user=None, dims=(1200, 800), n=None):
        return publish_version(
            self.design.pk,
            f'https://blobs.example.com/design/v{n or "x"}.png',
            dims=dims,
            notes='Updated colors',
            user=user or self.owner,
        )

    def test_version_numbers_are_sequential(self):
        for n in range(2, 5):
            version = self.publish(n=n)
            self.assertEqual(version.version_number, n)
        numbers = list(self.design.versions.order_by('version_number').values_list('version_number', flat=True))
        self.assertEqual(numbers, [1, 2, 3, 4])

    def test_design_version_tracks_latest_version(self):
        for n in range(2, 4):
            self.publish(user=self.editor, n=n)
            design = TestDataFactory.reload(self.design)
            latest = design.versions.aggregate(latest=Max('version_number'))['latest']
            self.assertEqual(design.version, latest)

    def test_publish_copies_image_and_dimensions(self):
        version = self.publish(dims=(1600, 900), n=2)
        design = TestDataFactory.reload(self.design)
        self.assertEqual(design.image_url, version.image_url)
        self.assertEqual((design.width, design.height), (1600, 900))

    def test_prior_versions_are_untouched(self):
        first = DesignVersion.objects.get(design=self.design, version_number=1)
        self.publish(dims=(1600, 900), n=2)
        first_after = DesignVersion.objects.get(pk=first.pk)
        self.assertEqual(first_after.image_url, first.image_url)
        self.assertEqual((first_after.width, first_after.height), (1200, 800))

    def test_versions_cannot_be_modified(self):
        first = DesignVersion.objects.get(design=self.design, version_number=1)
        first.notes = 'rewrite history'
        with self.assertRaises(Exception):
            first.save()

    def test_annotations_keep_their_coordinates(self):
        annotation = engine.create_annotation(
            self.design.pk, self.viewer, {'x': 40, 'y': 60}, 'Logo too small'
        )
        version = self.publish(dims=(600, 400), n=2)
        annotation.refresh_from_db()
        self.assertEqual((annotation.x, annotation.y), (40, 60))
        self.assertTrue(dimensions_changed(version))

    def test_same_dimensions_not_flagged(self):
        version = self.publish(dims=(1200, 800), n=2)
        self.assertFalse(dimensions_changed(version))

    def test_viewer_and_reviewer_cannot_publish(self):
        TestDataFactory.add_collaborator(self.design, self.reviewer, 'reviewer')
        for user in (self.viewer, self.reviewer):
            with self.assertRaises(AuthorizationError):
                self.publish(user=user, n=2)
        self.assertEqual(TestDataFactory.reload(self.design).version, 1)

    def test_unknown_design(self):
        with self.assertRaises(NotFoundError):
            publish_version(999999, 'https://blobs.example.com/x.png', user=self.owner)

    def test_invalid_image_url_leaves_state_unchanged(self):
        with self.assertRaises(ValidationError):
            publish_version(self.design.pk, 'not a url', user=self.owner)
        design = TestDataFactory.reload(self.design)
        self.assertEqual(design.version, 1)
        self.assertEqual(design.versions.count(), 1)

    def test_version_number_collision_is_conflict(self):
        from django.db import IntegrityError
        with mock.patch.object(DesignVersion, 'save', side_effect=IntegrityError('duplicate key')):
            with self.assertRaises(ConflictError):
                self.publish(n=2)

    def test_publish_emits_event_after_commit(self):
        received = []

        def handler(sender, **kwargs):
            received.append(kwargs)

        signals.version_published.connect(handler)
        try:
            with self.captureOnCommitCallbacks(execute=True):
                version = self.publish(n=2)
        finally:
            signals.version_published.disconnect(handler)

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0]['version'], version)
        self.assertNotIn(self.owner, received[0]['recipients'])
        self.assertIn(self.editor, received[0]['recipients'])


class ApprovalWorkflowTests(CacheResetTestCase):

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()
        self.reviewer1 = TestDataFactory.create_user()
        self.reviewer2 = TestDataFactory.create_user()
        self.viewer = TestDataFactory.create_user()
        self.design = TestDataFactory.create_design(self.owner)
        add_collaborator(self.design.pk, self.owner, self.reviewer1.pk, 'reviewer')
        add_collaborator(self.design.pk, self.owner, self.reviewer2.pk, 'reviewer')
        add_collaborator(self.design.pk, self.owner, self.viewer.pk, 'viewer')

    def status(self):
        return TestDataFactory.reload(self.design).status

    def approve_all(self):
        submit_approval(self.design.pk, self.reviewer1, 'approved')
        submit_approval(self.design.pk, self.reviewer2, 'approved')

    def test_scenario_two_reviewers_approve(self):
        submit_approval(self.design.pk, self.reviewer1, 'approved')
        self.assertEqual(self.status(), Design.STATUS_IN_REVIEW)
        submit_approval(self.design.pk, self.reviewer2, 'approved')
        self.assertEqual(self.status(), Design.STATUS_APPROVED)

    def test_assigning_reviewers_opens_review(self):
        self.assertEqual(self.status(), Design.STATUS_IN_REVIEW)

    def test_single_rejection_rejects(self):
        self.approve_all()
        submit_approval(self.design.pk, self.reviewer2, 'rejected', comment='Wrong palette')
        self.assertEqual(self.status(), Design.STATUS_REJECTED)

    def test_needs_changes_keeps_review_open(self):
        submit_approval(self.design.pk, self.reviewer1, 'approved')
        submit_approval(self.design.pk, self.reviewer2, 'needs-changes')
        self.assertEqual(self.status(), Design.STATUS_IN_REVIEW)

    def test_only_latest_vote_counts(self):
        submit_approval(self.design.pk, self.reviewer1, 'approved')
        submit_approval(self.design.pk, self.reviewer2, 'needs-changes')
        submit_approval(self.design.pk, self.reviewer2, 'approved')
        self.assertEqual(self.status(), Design.STATUS_APPROVED)

    def test_resubmission_updates_instead_of_duplicating(self):
        first = submit_approval(self.design.pk, self.reviewer1, 'needs-changes')
        second = submit_approval(self.design.pk, self.reviewer1, 'approved', comment='Looks good now')
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(DesignApproval.objects.filter(design=self.design, user=self.reviewer1).count(), 1)
        self.assertEqual(DesignApproval.objects.get(pk=first.pk).comment, 'Looks good now')

    def test_viewer_cannot_approve(self):
        with self.assertRaises(AuthorizationError):
            submit_approval(self.design.pk, self.viewer, 'approved')
        self.assertFalse(DesignApproval.objects.filter(user=self.viewer).exists())

    def test_non_collaborator_cannot_approve(self):
        outsider = TestDataFactory.create_user()
        with self.assertRaises(AuthorizationError):
            submit_approval(self.design.pk, outsider, 'approved')

    def test_invalid_verdict(self):
        with self.assertRaises(ValidationError):
            submit_approval(self.design.pk, self.reviewer1, 'maybe')

    def test_owner_vote_does_not_replace_reviewers(self):
        submit_approval(self.design.pk, self.owner, 'approved')
        self.assertEqual(self.status(), Design.STATUS_IN_REVIEW)

    def test_publish_resets_approved_design(self):
        self.approve_all()
        self.assertEqual(self.status(), Design.STATUS_APPROVED)
        publish_version(self.design.pk, 'https://blobs.example.com/v2.png', user=self.owner)
        self.assertEqual(self.status(), Design.STATUS_IN_REVIEW)

    def test_reapproval_after_publish_requires_every_reviewer(self):
        self.approve_all()
        publish_version(self.design.pk, 'https://blobs.example.com/v2.png', user=self.owner)
        submit_approval(self.design.pk, self.reviewer1, 'approved')
        self.assertEqual(self.status(), Design.STATUS_IN_REVIEW)
        submit_approval(self.design.pk, self.reviewer2, 'approved')
        self.assertEqual(self.status(), Design.STATUS_APPROVED)

    def test_rejected_design_returns_to_review_on_new_version(self):
        submit_approval(self.design.pk, self.reviewer1, 'rejected')
        self.assertEqual(self.status(), Design.STATUS_REJECTED)
        publish_version(self.design.pk, 'https://blobs.example.com/v2.png', user=self.owner)
        self.assertEqual(self.status(), Design.STATUS_IN_REVIEW)

    def test_verdict_records_design_version(self):
        publish_version(self.design.pk, 'https://blobs.example.com/v2.png', user=self.owner)
        approval = submit_approval(self.design.pk, self.reviewer1, 'approved')
        self.assertEqual(approval.design_version, 2)

    def test_status_change_is_audited(self):
        self.approve_all()
        self.assertTrue(AuditLog.objects.filter(
            action='design_status_change', object_id=str(self.design.pk), changes__to='approved'
        ).exists())

    def test_status_change_event(self):
        received = []

        def handler(sender, **kwargs):
            received.append(kwargs['previous_status'])

        signals.design_status_changed.connect(handler)
        try:
            with self.captureOnCommitCallbacks(execute=True):
                self.approve_all()
        finally:
            signals.design_status_changed.disconnect(handler)
        self.assertEqual(received, [Design.STATUS_IN_REVIEW])


class DesignWithoutReviewersTests(CacheResetTestCase):

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()
        self.editor = TestDataFactory.create_user()
        self.design = TestDataFactory.create_design(self.owner)
        add_collaborator(self.design.pk, self.owner, self.editor.pk, 'editor')

    def test_publish_keeps_draft(self):
        publish_version(self.design.pk, 'https://blobs.example.com/v2.png', user=self.owner)
        self.assertEqual(TestDataFactory.reload(self.design).status, Design.STATUS_DRAFT)

    def test_editor_verdicts_drive_status(self):
        submit_approval(self.design.pk, self.editor, 'approved')
        self.assertEqual(TestDataFactory.reload(self.design).status, Design.STATUS_APPROVED)
        submit_approval(self.design.pk, self.editor, 'rejected')
        self.assertEqual(TestDataFactory.reload(self.design).status, Design.STATUS_REJECTED)


class CollaboratorTests(CacheResetTestCase):

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()
        self.editor = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.design = TestDataFactory.create_design(self.owner)
        add_collaborator(self.design.pk, self.owner, self.editor.pk, 'editor')

    def test_only_owner_manages_collaborators(self):
        with self.assertRaises(AuthorizationError):
            add_collaborator(self.design.pk, self.editor, self.other.pk, 'viewer')

    def test_role_change_updates_existing_row(self):
        add_collaborator(self.design.pk, self.owner, self.other.pk, 'viewer')
        add_collaborator(self.design.pk, self.owner, self.other.pk, 'reviewer')
        rows = DesignCollaboration.objects.filter(design=self.design, user=self.other)
        self.assertEqual(rows.count(), 1)
        self.assertEqual(rows.get().role, 'reviewer')

    def test_creator_stays_owner(self):
        with self.assertRaises(ValidationError):
            add_collaborator(self.design.pk, self.owner, self.owner.pk, 'viewer')

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            add_collaborator(self.design.pk, self.owner, 999999, 'viewer')

    def test_invalid_role(self):
        with self.assertRaises(ValidationError):
            add_collaborator(self.design.pk, self.owner, self.other.pk, 'admin')

    def test_demoting_last_reviewer_recomputes_status(self):
        add_collaborator(self.design.pk, self.owner, self.other.pk, 'reviewer')
        self.assertEqual(TestDataFactory.reload(self.design).status, Design.STATUS_IN_REVIEW)
        add_collaborator(self.design.pk, self.owner, self.other.pk, 'viewer')
        self.assertEqual(TestDataFactory.reload(self.design).status, Design.STATUS_DRAFT)


class AnnotationEngineTests(CacheResetTestCase):

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()
        self.editor = TestDataFactory.create_user()
        self.reviewer = TestDataFactory.create_user()
        self.viewer = TestDataFactory.create_user()
        self.outsider = TestDataFactory.create_user()
        self.design = TestDataFactory.create_design(self.owner)
        TestDataFactory.add_collaborator(self.design, self.editor, 'editor')
        TestDataFactory.add_collaborator(self.design, self.reviewer, 'reviewer')
        TestDataFactory.add_collaborator(self.design, self.viewer, 'viewer')

    def annotate(self, user=None, **kwargs):
        kwargs.setdefault('geometry', {'x': 10, 'y': 20})
        kwargs.setdefault('content', 'Increase contrast here')
        return engine.create_annotation(self.design.pk, user or self.reviewer, **kwargs)

    def test_create_defaults(self):
        annotation = self.annotate()
        self.assertFalse(annotation.resolved)
        self.assertIsNone(annotation.resolved_by)
        self.assertIsNone(annotation.resolved_at)
        self.assertEqual(annotation.width, 150)
        self.assertEqual(annotation.height, 80)
        self.assertEqual(annotation.color, '#FF5733')
        self.assertEqual(annotation.shape, 'rectangle')
        self.assertEqual(annotation.replies, [])

    def test_viewer_can_annotate(self):
        annotation = self.annotate(user=self.viewer)
        self.assertEqual(annotation.user, self.viewer)

    def test_outsider_cannot_annotate(self):
        with self.assertRaises(AuthorizationError):
            self.annotate(user=self.outsider)

    def test_unknown_design(self):
        with self.assertRaises(NotFoundError):
            engine.create_annotation(999999, self.owner, {'x': 1, 'y': 1}, 'Hello')

    def test_freeform_requires_path_data(self):
        with self.assertRaises(ValidationError):
            self.annotate(shape='freeform', path_data='')
        with self.assertRaises(ValidationError):
            self.annotate(shape='freeform')
        self.assertFalse(Annotation.objects.exists())

    def test_freeform_with_path(self):
        annotation = self.annotate(shape='freeform', path_data='M 10 10 L 40 40')
        self.assertEqual(annotation.path_data, 'M 10 10 L 40 40')

    def test_path_data_ignored_for_other_shapes(self):
        annotation = self.annotate(shape='circle', path_data='M 0 0')
        self.assertIsNone(annotation.path_data)

    def test_missing_coordinates(self):
        with self.assertRaises(ValidationError):
            self.annotate(geometry={'x': 5})

    def test_negative_coordinates(self):
        with self.assertRaises(ValidationError):
            self.annotate(geometry={'x': -5, 'y': 5})

    def test_empty_content(self):
        with self.assertRaises(ValidationError):
            self.annotate(content='   ')

    def test_invalid_color(self):
        with self.assertRaises(ValidationError):
            self.annotate(color='red')

    def test_replies_append_in_order(self):
        annotation = self.annotate()
        engine.add_reply(annotation.pk, self.owner, 'Agreed')
        engine.add_reply(annotation.pk, self.viewer, 'Will fix')
        annotation.refresh_from_db()
        self.assertEqual([reply['content'] for reply in annotation.replies], ['Agreed', 'Will fix'])
        self.assertEqual([reply['author_id'] for reply in annotation.replies], [self.owner.pk, self.viewer.pk])
        self.assertLessEqual(annotation.replies[0]['created_at'], annotation.replies[1]['created_at'])

    def test_blank_reply_rejected(self):
        annotation = self.annotate()
        with self.assertRaises(ValidationError):
            engine.add_reply(annotation.pk, self.owner, '  ')

    def test_outsider_cannot_reply(self):
        annotation = self.annotate()
        with self.assertRaises(AuthorizationError):
            engine.add_reply(annotation.pk, self.outsider, 'Drive-by comment')

    def test_resolve_sets_fields(self):
        annotation = self.annotate()
        resolved = engine.resolve_annotation(annotation.pk, self.editor, note='Fixed in v2')
        self.assertTrue(resolved.resolved)
        self.assertEqual(resolved.resolved_by, self.editor)
        self.assertIsNotNone(resolved.resolved_at)
        self.assertEqual(resolved.resolved_note, 'Fixed in v2')

    def test_resolve_is_idempotent(self):
        annotation = self.annotate()
        first = engine.resolve_annotation(annotation.pk, self.editor, note='Fixed')
        second = engine.resolve_annotation(annotation.pk, self.owner, note='Again')
        self.assertEqual(second.resolved_by_id, first.resolved_by_id)
        self.assertEqual(second.resolved_at, first.resolved_at)
        self.assertEqual(second.resolved_note, 'Fixed')
        self.assertEqual(AuditLog.objects.filter(action='annotation_resolve').count(), 1)

    def test_reopen_clears_resolution(self):
        annotation = self.annotate()
        engine.resolve_annotation(annotation.pk, self.editor, note='Done')
        reopened = engine.reopen_annotation(annotation.pk, self.reviewer)
        self.assertFalse(reopened.resolved)
        self.assertIsNone(reopened.resolved_by)
        self.assertIsNone(reopened.resolved_at)
        self.assertIsNone(reopened.resolved_note)

    def test_reopen_allowed_for_resolver_and_managers(self):
        annotation = self.annotate(user=self.viewer)
        for user in (self.viewer, self.reviewer, self.owner, self.editor):
            engine.resolve_annotation(annotation.pk, self.reviewer)
            engine.reopen_annotation(annotation.pk, user)
            annotation.refresh_from_db()
            self.assertFalse(annotation.resolved)

    def test_reopen_denied_for_uninvolved_collaborator(self):
        annotation = self.annotate(user=self.reviewer)
        engine.resolve_annotation(annotation.pk, self.editor)
        with self.assertRaises(AuthorizationError):
            engine.reopen_annotation(annotation.pk, self.viewer)
        annotation.refresh_from_db()
        self.assertTrue(annotation.resolved)

    def test_update_by_author(self):
        annotation = self.annotate(user=self.viewer)
        updated = engine.update_annotation(annotation.pk, self.viewer, content='Bigger logo', x=30)
        self.assertEqual(updated.content, 'Bigger logo')
        self.assertEqual(updated.x, 30)

    def test_update_denied_for_other_reviewer(self):
        annotation = self.annotate(user=self.viewer)
        with self.assertRaises(AuthorizationError):
            engine.update_annotation(annotation.pk, self.reviewer, content='Hijacked')

    def test_update_cannot_touch_resolution(self):
        annotation = self.annotate()
        with self.assertRaises(ValidationError):
            engine.update_annotation(annotation.pk, self.reviewer, resolved=True)

    def test_update_to_freeform_requires_path(self):
        annotation = self.annotate()
        with self.assertRaises(ValidationError):
            engine.update_annotation(annotation.pk, self.reviewer, shape='freeform')

    def test_unknown_annotation(self):
        with self.assertRaises(NotFoundError):
            engine.resolve_annotation(999999, self.owner)

    def test_events_emitted_on_commit(self):
        created, resolved = [], []

        def on_created(sender, **kwargs):
            created.append(kwargs)

        def on_resolved(sender, **kwargs):
            resolved.append(kwargs)

        signals.annotation_created.connect(on_created)
        signals.annotation_resolved.connect(on_resolved)
        try:
            with self.captureOnCommitCallbacks(execute=True):
                annotation = self.annotate(user=self.viewer)
                engine.resolve_annotation(annotation.pk, self.editor)
                engine.resolve_annotation(annotation.pk, self.editor)
        finally:
            signals.annotation_created.disconnect(on_created)
            signals.annotation_resolved.disconnect(on_resolved)

        self.assertEqual(len(created), 1)
        self.assertEqual(created[0]['annotation'].pk, annotation.pk)
        self.assertNotIn(self.viewer, created[0]['recipients'])
        self.assertIn(self.owner, created[0]['recipients'])
        self.assertEqual(len(resolved), 1)

    def test_muted_collaborators_not_notified(self):
        muted = TestDataFactory.create_user()
        TestDataFactory.add_collaborator(self.design, muted, 'viewer', notifications_enabled=False)
        recipients = signals.notification_recipients(self.design)
        self.assertNotIn(muted, recipients)
        self.assertIn(self.viewer, recipients)

    def test_database_rejects_inconsistent_resolution(self):
        from django.db import IntegrityError, transaction
        annotation = self.annotate()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Annotation.objects.filter(pk=annotation.pk).update(resolved=True)


class DesignAPITests(CacheResetTestCase):
    """Test design endpoints"""

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()
        self.reviewer = TestDataFactory.create_user()
        self.viewer = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)
        self.project = TestDataFactory.create_project(self.owner)

    def create_design(self, **overrides):
        data = {
            'title': 'Checkout redesign',
            'description': 'Second pass',
            'image_url': 'https://blobs.example.com/checkout/v1.png',
            'width': 1440,
            'height': 900,
            'tags': ['checkout', 'mobile'],
            'project_id': self.project.id,
        }
        data.update(overrides)
        return self.client.post('/api/v1/designs/', data, format='json')

    def as_user(self, user):
        client = AuthenticatedAPIClient()
        client.authenticate_user(user)
        return client

    def test_requires_authentication(self):
        response = AuthenticatedAPIClient().get('/api/v1/designs/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_design(self):
        response = self.create_design()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(response.data['version'], 1)
        self.assertEqual(response.data['tags'], ['checkout', 'mobile'])
        self.assertEqual(response.data['created_by']['id'], self.owner.id)

    def test_create_design_missing_fields(self):
        response = self.client.post('/api/v1/designs/', {'title': 'No image'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('image_url', response.data)

    def test_create_design_unknown_project(self):
        response = self.create_design(project_id=999999)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_status_is_not_writable(self):
        design_id = self.create_design().data['id']
        response = self.client.patch(f'/api/v1/designs/{design_id}/', {'status': 'approved'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('status', response.data)
        self.assertEqual(Design.objects.get(pk=design_id).status, 'draft')

    def test_patch_metadata(self):
        design_id = self.create_design().data['id']
        response = self.client.patch(f'/api/v1/designs/{design_id}/', {'title': 'Checkout v2', 'tags': ['web']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['title'], 'Checkout v2')
        # detail read reflects the write
        detail = self.client.get(f'/api/v1/designs/{design_id}/')
        self.assertEqual(detail.data['title'], 'Checkout v2')

    def test_detail_cache_invalidated_by_status_change(self):
        design = TestDataFactory.create_design(self.owner)
        add_collaborator(design.pk, self.owner, self.reviewer.pk, 'reviewer')
        first = self.client.get(f'/api/v1/designs/{design.pk}/')
        self.assertEqual(first.data['status'], 'in-review')
        submit_approval(design.pk, self.reviewer, 'approved')
        second = self.client.get(f'/api/v1/designs/{design.pk}/')
        self.assertEqual(second.data['status'], 'approved')

    def test_outsider_cannot_view(self):
        design = TestDataFactory.create_design(self.owner)
        response = self.as_user(self.viewer).get(f'/api/v1/designs/{design.pk}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'forbidden')

    def test_unknown_design(self):
        response = self.client.get('/api/v1/designs/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_only_collaborations(self):
        mine = TestDataFactory.create_design(self.owner, title='Mine')
        other_owner = TestDataFactory.create_user()
        TestDataFactory.create_design(other_owner, title='Theirs')
        response = self.client.get('/api/v1/designs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [item['id'] for item in response.data['results']]
        self.assertEqual(ids, [mine.pk])
        self.assertEqual(response.data['count'], 1)

    def test_list_filters(self):
        TestDataFactory.create_design(self.owner, title='Hero banner', project=self.project)
        TestDataFactory.create_design(self.owner, title='Footer')
        response = self.client.get(f'/api/v1/designs/?project={self.project.id}')
        self.assertEqual([item['title'] for item in response.data['results']], ['Hero banner'])
        response = self.client.get('/api/v1/designs/?search=foot')
        self.assertEqual([item['title'] for item in response.data['results']], ['Footer'])
        response = self.client.get('/api/v1/designs/?status=approved')
        self.assertEqual(response.data['results'], [])

    def test_publish_version_endpoint(self):
        design_id = self.create_design().data['id']
        response = self.client.post(f'/api/v1/designs/{design_id}/versions/', {
            'image_url': 'https://blobs.example.com/checkout/v2.png',
            'width': 1280,
            'height': 720,
            'notes': 'Tightened spacing',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['version_number'], 2)
        self.assertTrue(response.data['dimensions_changed'])

        versions = self.client.get(f'/api/v1/designs/{design_id}/versions/')
        self.assertEqual([v['version_number'] for v in versions.data], [1, 2])
        detail = self.client.get(f'/api/v1/designs/{design_id}/')
        self.assertEqual(detail.data['version'], 2)
        self.assertEqual(detail.data['width'], 1280)

    def test_publish_requires_both_dimensions(self):
        design_id = self.create_design().data['id']
        response = self.client.post(f'/api/v1/designs/{design_id}/versions/', {
            'image_url': 'https://blobs.example.com/checkout/v2.png',
            'width': 1280,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_viewer_cannot_publish(self):
        design = TestDataFactory.create_design(self.owner)
        TestDataFactory.add_collaborator(design, self.viewer, 'viewer')
        response = self.as_user(self.viewer).post(f'/api/v1/designs/{design.pk}/versions/', {
            'image_url': 'https://blobs.example.com/v2.png',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_annotation_flow(self):
        design = TestDataFactory.create_design(self.owner)
        TestDataFactory.add_collaborator(design, self.viewer, 'viewer')
        viewer_client = self.as_user(self.viewer)

        response = viewer_client.post(f'/api/v1/designs/{design.pk}/annotations/', {
            'content': 'Button label is cut off',
            'x': 320,
            'y': 540,
            'shape': 'circle',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        annotation_id = response.data['id']
        self.assertFalse(response.data['resolved'])

        response = self.client.patch(f'/api/v1/annotations/{annotation_id}/', {'action': 'reply', 'content': 'Good catch'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['replies'][0]['content'], 'Good catch')

        response = self.client.patch(f'/api/v1/annotations/{annotation_id}/', {'action': 'resolve', 'note': 'Fixed in v2'}, format='json')
        self.assertTrue(response.data['resolved'])
        self.assertEqual(response.data['resolved_by']['id'], self.owner.id)

        response = viewer_client.patch(f'/api/v1/annotations/{annotation_id}/', {'action': 'reopen'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['resolved'])

        response = self.client.get(f'/api/v1/designs/{design.pk}/annotations/?resolved=false')
        self.assertEqual([a['id'] for a in response.data], [annotation_id])

    def test_freeform_without_path_is_rejected(self):
        design = TestDataFactory.create_design(self.owner)
        response = self.client.post(f'/api/v1/designs/{design.pk}/annotations/', {
            'content': 'Circle this area',
            'x': 10,
            'y': 10,
            'shape': 'freeform',
            'path_data': '',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('path_data', response.data)

    def test_unknown_annotation_action(self):
        design = TestDataFactory.create_design(self.owner)
        annotation = engine.create_annotation(design.pk, self.owner, {'x': 1, 'y': 1}, 'Note')
        response = self.client.patch(f'/api/v1/annotations/{annotation.pk}/', {'action': 'delete'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_empty_update_rejected(self):
        design = TestDataFactory.create_design(self.owner)
        annotation = engine.create_annotation(design.pk, self.owner, {'x': 1, 'y': 1}, 'Note')
        response = self.client.patch(f'/api/v1/annotations/{annotation.pk}/', {'action': 'update'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_approval_endpoint(self):
        design = TestDataFactory.create_design(self.owner)
        add_collaborator(design.pk, self.owner, self.reviewer.pk, 'reviewer')
        response = self.as_user(self.reviewer).post(f'/api/v1/designs/{design.pk}/approvals/', {
            'status': 'approved',
            'comment': 'Ship it',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['design_status'], 'approved')
        self.assertTrue(response.data['is_current'])

        approvals = self.client.get(f'/api/v1/designs/{design.pk}/approvals/')
        self.assertEqual(len(approvals.data), 1)

    def test_viewer_approval_forbidden(self):
        design = TestDataFactory.create_design(self.owner)
        TestDataFactory.add_collaborator(design, self.viewer, 'viewer')
        response = self.as_user(self.viewer).post(f'/api/v1/designs/{design.pk}/approvals/', {
            'status': 'approved',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(DesignApproval.objects.exists())

    def test_collaborator_endpoint(self):
        design = TestDataFactory.create_design(self.owner)
        response = self.client.post(f'/api/v1/designs/{design.pk}/collaborators/', {
            'user_id': self.reviewer.id,
            'role': 'reviewer',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['role'], 'reviewer')

        listing = self.as_user(self.reviewer).get(f'/api/v1/designs/{design.pk}/collaborators/')
        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        self.assertEqual({c['role'] for c in listing.data}, {'owner', 'reviewer'})


class DesignProjectScopeTests(CacheResetTestCase):
    """Designs may only be filed under projects the user can see"""

    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user()
        self.stranger = TestDataFactory.create_user()
        self.foreign_project = TestDataFactory.create_project(self.stranger)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def test_create_in_hidden_project_is_not_found(self):
        response = self.client.post('/api/v1/designs/', {
            'title': 'Pricing page',
            'image_url': 'https://blobs.example.com/pricing/v1.png',
            'project_id': self.foreign_project.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')
        self.assertFalse(Design.objects.filter(project=self.foreign_project).exists())

    def test_hidden_and_missing_projects_look_the_same(self):
        hidden = self.client.post('/api/v1/designs/', {
            'title': 'A', 'image_url': 'https://blobs.example.com/a.png', 'project_id': self.foreign_project.id,
        }, format='json')
        missing = self.client.post('/api/v1/designs/', {
            'title': 'B', 'image_url': 'https://blobs.example.com/b.png', 'project_id': 999999,
        }, format='json')
        self.assertEqual(hidden.status_code, missing.status_code)

    def test_project_member_can_file_designs(self):
        self.foreign_project.members.add(self.owner)
        design = TestDataFactory.create_design(self.owner, project=self.foreign_project)
        self.assertEqual(design.project_id, self.foreign_project.id)

    def test_staff_can_use_any_project(self):
        staff = TestDataFactory.create_user(is_staff=True)
        design = TestDataFactory.create_design(staff, project=self.foreign_project)
        self.assertEqual(design.project_id, self.foreign_project.id)

    def test_patch_into_hidden_project_is_not_found(self):
        design = TestDataFactory.create_design(self.owner)
        response = self.client.patch(f'/api/v1/designs/{design.pk}/', {
            'project_id': self.foreign_project.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertIsNone(TestDataFactory.reload(design).project_id)

    def test_update_design_checks_project_visibility(self):
        from backend.designs.versions import update_design
        design = TestDataFactory.create_design(self.owner)
        with self.assertRaises(NotFoundError):
            update_design(design.pk, self.owner, {'project_id': self.foreign_project.id})
        own_project = TestDataFactory.create_project(self.owner)
        updated = update_design(design.pk, self.owner, {'project_id': own_project.id})
        self.assertEqual(updated.project_id, own_project.id)


class AnnotationLookupTests(CacheResetTestCase):

    def test_unknown_annotation_uses_domain_error_shape(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user())
        response = client.get('/api/v1/annotations/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {'error': 'Annotation 999999 not found', 'code': 'not_found'})


class DesignAdminTests(CacheResetTestCase):
    """Admin edits keep the derived status in step"""

    def setUp(self):
        super().setUp()
        self.admin_user = TestDataFactory.create_user(is_staff=True, is_superuser=True)
        self.owner = TestDataFactory.create_user()
        self.collaborator = TestDataFactory.create_user()
        self.design = TestDataFactory.create_design(self.owner)
        self.owner_row = DesignCollaboration.objects.get(design=self.design, user=self.owner)
        self.viewer_row = TestDataFactory.add_collaborator(self.design, self.collaborator, 'viewer')
        self.client = Client()
        self.client.force_login(self.admin_user)

    def change_form_data(self, collaborator_role):
        design = self.design
        version = design.versions.get()
        return {
            'title': design.title,
            'description': design.description,
            'image_url': design.image_url,
            'thumbnail_url': design.thumbnail_url or '',
            'project': '',
            'created_by': design.created_by_id,
            'width': design.width,
            'height': design.height,
            'tags': '[]',
            'versions-TOTAL_FORMS': '1',
            'versions-INITIAL_FORMS': '1',
            'versions-MIN_NUM_FORMS': '0',
            'versions-MAX_NUM_FORMS': '1000',
            'versions-0-id': version.pk,
            'versions-0-design': design.pk,
            'collaborations-TOTAL_FORMS': '2',
            'collaborations-INITIAL_FORMS': '2',
            'collaborations-MIN_NUM_FORMS': '0',
            'collaborations-MAX_NUM_FORMS': '1000',
            'collaborations-0-id': self.owner_row.pk,
            'collaborations-0-design': design.pk,
            'collaborations-0-role': 'owner',
            'collaborations-0-notifications_enabled': 'on',
            'collaborations-1-id': self.viewer_row.pk,
            'collaborations-1-design': design.pk,
            'collaborations-1-role': collaborator_role,
            'collaborations-1-notifications_enabled': 'on',
            '_save': 'Save',
        }

    def test_role_change_in_admin_recomputes_status(self):
        url = reverse('admin:designs_design_change', args=[self.design.pk])
        self.assertEqual(self.client.get(url).status_code, 200)

        response = self.client.post(url, self.change_form_data('reviewer'))
        self.assertEqual(response.status_code, 302)
        self.viewer_row.refresh_from_db()
        self.assertEqual(self.viewer_row.role, 'reviewer')
        self.assertEqual(TestDataFactory.reload(self.design).status, Design.STATUS_IN_REVIEW)

    def test_demotion_in_admin_recomputes_status(self):
        url = reverse('admin:designs_design_change', args=[self.design.pk])
        self.client.post(url, self.change_form_data('reviewer'))
        self.client.post(url, self.change_form_data('viewer'))
        self.assertEqual(TestDataFactory.reload(self.design).status, Design.STATUS_DRAFT)

    def test_admin_cannot_add_designs_or_verdicts(self):
        self.assertEqual(self.client.get(reverse('admin:designs_design_add')).status_code, 403)
        self.assertEqual(self.client.get(reverse('admin:designs_designapproval_add')).status_code, 403)
