import django_filters
from django.db.models import Q
from .models import Annotation, Design


class DesignFilter(django_filters.FilterSet):
    """Filters for the design list"""
    search = django_filters.CharFilter(method='filter_search', label='Search')
    project = django_filters.NumberFilter(field_name='project_id', lookup_expr='exact')
    status = django_filters.ChoiceFilter(choices=Design.STATUS_CHOICES)
    created_by = django_filters.NumberFilter(field_name='created_by_id', lookup_expr='exact')

    class Meta:
        model = Design
        fields = ['search', 'project', 'status', 'created_by']

    def filter_search(self, queryset, name, value):
        """Match every word against title or description"""
        words = [word for word in (value or '').split() if word]
        for word in words:
            queryset = queryset.filter(Q(title__icontains=word) | Q(description__icontains=word))
        return queryset


class AnnotationFilter(django_filters.FilterSet):
    """Filters for a design's annotations"""
    resolved = django_filters.BooleanFilter(field_name='resolved')
    shape = django_filters.ChoiceFilter(choices=Annotation.SHAPE_CHOICES)
    user = django_filters.NumberFilter(field_name='user_id', lookup_expr='exact')

    class Meta:
        model = Annotation
        fields = ['resolved', 'shape', 'user']
