from django.urls import path
from .views import (
    design_list_create, design_detail,
    design_version_list_create,
    design_annotation_list_create, annotation_detail,
    design_approval_list_create,
    design_collaborator_list_create,
)

urlpatterns = [
    # Design endpoints
    path('designs/', design_list_create, name='design-list-create'),
    path('designs/<int:pk>/', design_detail, name='design-detail'),

    # Version endpoints
    path('designs/<int:pk>/versions/', design_version_list_create, name='design-version-list-create'),

    # Annotation endpoints
    path('designs/<int:pk>/annotations/', design_annotation_list_create, name='design-annotation-list-create'),
    path('annotations/<int:pk>/', annotation_detail, name='annotation-detail'),

    # Approval endpoints
    path('designs/<int:pk>/approvals/', design_approval_list_create, name='design-approval-list-create'),

    # Collaborator endpoints
    path('designs/<int:pk>/collaborators/', design_collaborator_list_create, name='design-collaborator-list-create'),
]
