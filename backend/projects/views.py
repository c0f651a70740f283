import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.shortcuts import get_object_or_404
from backend.core.exceptions import AuthorizationError
from backend.core.utils import create_audit_log
from .models import Project
from .serializers import ProjectSerializer

logger = logging.getLogger('backend.projects')


def visible_projects(user):
    """Projects the user created or is a member of (staff see everything)"""
    queryset = Project.objects.select_related('created_by').prefetch_related('members')
    if user.is_staff:
        return queryset
    return queryset.filter(Q(created_by=user) | Q(members=user)).distinct()


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def project_list_create(request):
    """List visible projects or create a new project"""
    if request.method == 'GET':
        queryset = visible_projects(request.user)
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        serializer = ProjectSerializer(queryset, many=True)
        return Response(serializer.data)

    serializer = ProjectSerializer(data=request.data)
    if serializer.is_valid():
        project = serializer.save(created_by=request.user)
        logger.info(f"Project '{project.name}' created by {request.user.username}")
        create_audit_log(
            request=request,
            action='create',
            model_name='Project',
            object_id=project.id,
            object_name=project.name,
            changes={'status': project.status},
        )
        return Response(ProjectSerializer(project).data, status=status.HTTP_201_CREATED)
    logger.warning(f"Project creation validation failed: {serializer.errors}")
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def project_detail(request, pk):
    """Retrieve or update a project (update requires creator or staff)"""
    project = get_object_or_404(visible_projects(request.user), pk=pk)

    if request.method == 'GET':
        return Response(ProjectSerializer(project).data)

    if not (request.user.is_staff or project.created_by_id == request.user.id):
        logger.warning(f"User {request.user.username} attempted to modify project {pk} without ownership")
        raise AuthorizationError('Only the project creator can modify this project.')

    serializer = ProjectSerializer(project, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        logger.info(f"Project {pk} updated by {request.user.username}")
        create_audit_log(
            request=request,
            action='update',
            model_name='Project',
            object_id=project.id,
            object_name=project.name,
            changes={key: str(value) for key, value in serializer.validated_data.items() if key != 'members'},
        )
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
