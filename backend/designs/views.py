import logging
from django.core.paginator import Paginator
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from backend.core.cache_utils import cache_design_data, get_cached_design
from backend.core.exceptions import error_response
from . import annotations as annotation_engine
from .approvals import submit_approval
from .filters import AnnotationFilter, DesignFilter
from .models import Design, DesignApproval, DesignCollaboration
from .permissions import ALL_ROLES, add_collaborator, get_design, require_role
from .serializers import (
    AddCollaboratorSerializer, AnnotationActionSerializer, AnnotationCreateSerializer,
    AnnotationSerializer, DesignApprovalSerializer, DesignCollaborationSerializer,
    DesignSerializer, DesignUpdateSerializer, DesignVersionSerializer,
    PublishVersionSerializer, SubmitApprovalSerializer,
)
from .versions import create_design, publish_version, update_design

logger = logging.getLogger('backend.designs')

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def _int_param(request, name, default):
    try:
        return max(1, int(request.query_params.get(name, default)))
    except (TypeError, ValueError):
        return default


def _readable_design(request, pk):
    """Load a design the current user collaborates on"""
    design = get_design(pk)
    require_role(design, request.user, ALL_ROLES, 'view this design')
    return design


# Design views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def design_list_create(request):
    """List designs the user collaborates on or create a new design"""
    if request.method == 'GET':
        queryset = (
            Design.objects
            .filter(collaborations__user=request.user)
            .select_related('created_by')
            .distinct()
        )
        filterset = DesignFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        queryset = filterset.qs

        page = _int_param(request, 'page', 1)
        limit = min(_int_param(request, 'limit', DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
        paginator = Paginator(queryset, limit)
        page_obj = paginator.get_page(page)

        serializer = DesignSerializer(page_obj, many=True)
        return Response({
            'results': serializer.data,
            'count': paginator.count,
            'next': page_obj.next_page_number() if page_obj.has_next() else None,
            'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
            'page': page_obj.number,
            'page_size': limit,
            'total_pages': paginator.num_pages,
        })

    serializer = DesignSerializer(data=request.data)
    if not serializer.is_valid():
        logger.warning(f"Design creation validation failed: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    design = create_design(request.user, serializer.validated_data, request=request)
    return Response(DesignSerializer(design).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def design_detail(request, pk):
    """Retrieve a design or edit its metadata"""
    design = _readable_design(request, pk)

    if request.method == 'GET':
        cached_data = get_cached_design(design.pk)
        if cached_data is not None:
            return Response(cached_data)
        response_data = DesignSerializer(design).data
        cache_design_data(design.pk, response_data)
        return Response(response_data)

    serializer = DesignUpdateSerializer(design, data=request.data, partial=True)
    if not serializer.is_valid():
        logger.warning(f"Design {pk} update validation failed: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    design = update_design(design.pk, request.user, serializer.validated_data, request=request)
    return Response(DesignSerializer(design).data)


# Version views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def design_version_list_create(request, pk):
    """List a design's versions or publish a new one"""
    design = _readable_design(request, pk)

    if request.method == 'GET':
        versions = design.versions.select_related('created_by').order_by('version_number')
        return Response(DesignVersionSerializer(versions, many=True).data)

    serializer = PublishVersionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    dims = (data['width'], data['height']) if data.get('width') is not None else None
    version = publish_version(
        design.pk,
        data['image_url'],
        dims=dims,
        notes=data.get('notes', ''),
        user=request.user,
        thumbnail_url=data.get('thumbnail_url'),
        request=request,
    )
    return Response(DesignVersionSerializer(version).data, status=status.HTTP_201_CREATED)


# Annotation views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def design_annotation_list_create(request, pk):
    """List a design's annotations or pin a new one"""
    design = _readable_design(request, pk)

    if request.method == 'GET':
        queryset = design.annotations.select_related('user', 'resolved_by')
        filterset = AnnotationFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return Response(AnnotationSerializer(filterset.qs, many=True).data)

    serializer = AnnotationCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    annotation = annotation_engine.create_annotation(
        design.pk,
        request.user,
        geometry={field: data.get(field) for field in annotation_engine.GEOMETRY_FIELDS},
        content=data['content'],
        shape=data['shape'],
        path_data=data.get('path_data'),
        color=data.get('color'),
        request=request,
    )
    return Response(AnnotationSerializer(annotation).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def annotation_detail(request, pk):
    """Retrieve an annotation or apply a reply/resolve/reopen/update action"""
    annotation = annotation_engine.get_annotation(pk)
    require_role(annotation.design, request.user, ALL_ROLES, 'view this annotation')

    if request.method == 'GET':
        return Response(AnnotationSerializer(annotation).data)

    serializer = AnnotationActionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    action = serializer.validated_data['action']
    if action == 'reply':
        annotation = annotation_engine.add_reply(pk, request.user, serializer.validated_data['content'], request=request)
    elif action == 'resolve':
        annotation = annotation_engine.resolve_annotation(pk, request.user, note=serializer.validated_data.get('note'), request=request)
    elif action == 'reopen':
        annotation = annotation_engine.reopen_annotation(pk, request.user, request=request)
    else:
        changes = serializer.get_changes()
        if not changes:
            return error_response('No annotation fields to update')
        annotation = annotation_engine.update_annotation(pk, request.user, request=request, **changes)

    return Response(AnnotationSerializer(annotation).data)


# Approval views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def design_approval_list_create(request, pk):
    """List verdicts on a design or submit/replace the current user's verdict"""
    design = _readable_design(request, pk)

    if request.method == 'GET':
        approvals = DesignApproval.objects.filter(design=design).select_related('user', 'design')
        return Response(DesignApprovalSerializer(approvals, many=True).data)

    serializer = SubmitApprovalSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    approval = submit_approval(
        design.pk,
        request.user,
        serializer.validated_data['status'],
        comment=serializer.validated_data.get('comment', ''),
        request=request,
    )
    approval.design.refresh_from_db(fields=['status', 'version'])
    response_data = DesignApprovalSerializer(approval).data
    response_data['design_status'] = approval.design.status
    return Response(response_data, status=status.HTTP_201_CREATED)


# Collaborator views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def design_collaborator_list_create(request, pk):
    """List a design's collaborators or add/change one (owners only)"""
    design = _readable_design(request, pk)

    if request.method == 'GET':
        collaborations = DesignCollaboration.objects.filter(design=design).select_related('user', 'added_by')
        return Response(DesignCollaborationSerializer(collaborations, many=True).data)

    serializer = AddCollaboratorSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    collaboration = add_collaborator(
        design.pk,
        request.user,
        data['user_id'],
        role=data['role'],
        notifications_enabled=data['notifications_enabled'],
        request=request,
    )
    return Response(DesignCollaborationSerializer(collaboration).data, status=status.HTTP_201_CREATED)
