from django.urls import path
from .views import (
    user_me, user_list_create, user_detail,
    setting_list_create, setting_detail,
    structured_settings, structured_settings_section, public_settings,
    audit_log_list, audit_log_detail,
)

urlpatterns = [
    path('auth/me/', user_me, name='user-me'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),

    # Setting endpoints
    path('settings/', setting_list_create, name='setting-list-create'),
    path('settings/structured/', structured_settings, name='settings-structured'),
    path('settings/structured/<str:section>/', structured_settings_section, name='settings-structured-section'),
    path('settings/<str:key>/', setting_detail, name='setting-detail'),
    path('store/settings/', public_settings, name='store-settings'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/<int:pk>/', audit_log_detail, name='audit-log-detail'),
]
