"""
URL configuration for the design review backend.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Design Review Admin Panel"
admin.site.site_title = "Design Review Admin Portal"
admin.site.index_title = "Welcome to the Design Review Admin Panel"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.projects.urls')),
    path('api/v1/', include('backend.designs.urls')),
]
