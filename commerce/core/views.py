import logging

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .exceptions import ValidationFailed
from .models import Setting, AuditLog
from .permissions import IsStoreAdmin, IsSuperAdmin, capabilities_for
from .serializers import (
    UserSerializer, UserCreateSerializer,
    SettingSerializer, AuditLogSerializer
)
from . import settings_store
from .utils import create_audit_log, paginated_response

logger = logging.getLogger(__name__)

User = get_user_model()


def _check_role_change(request, target_role, current_role=None):
    """Only a SUPER_ADMIN may grant or revoke SUPER_ADMIN"""
    touches_super = User.SUPER_ADMIN in (target_role, current_role) and target_role != current_role
    if touches_super and not IsSuperAdmin().has_permission(request, None):
        raise PermissionDenied('Only a super admin can grant or revoke the super admin role.')


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def user_list_create(request):
    """List all admin users or create a new one"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        role = request.query_params.get('role')
        if role:
            users = users.filter(role=role)
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)

    serializer = UserCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    _check_role_change(request, serializer.validated_data.get('role', User.EDITOR))
    user = serializer.save()
    create_audit_log(request=request, action='create', model_name='User', object_id=user.id,
                     object_name=user.username, changes={'role': user.role})
    return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def user_detail(request, pk):
    """Retrieve, update or delete an admin user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        return Response(UserSerializer(user).data)

    if request.method == 'DELETE':
        if user.pk == request.user.pk:
            raise ValidationFailed('You cannot delete your own account.')
        _check_role_change(request, None, user.role)
        create_audit_log(request=request, action='delete', model_name='User', object_id=user.id,
                         object_name=user.username)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    if 'role' in serializer.validated_data:
        _check_role_change(request, serializer.validated_data['role'], user.role)
    serializer.save()
    create_audit_log(request=request, action='update', model_name='User', object_id=user.id,
                     object_name=user.username, changes={'fields': sorted(serializer.validated_data.keys())})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Current user with role capability flags"""
    user_data = UserSerializer(request.user).data
    user_data['role'] = request.user.effective_role
    user_data.update(capabilities_for(request.user))
    return Response(user_data)


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def setting_list_create(request):
    """List all settings or upsert one by key"""
    if request.method == 'GET':
        settings = Setting.objects.all()
        prefix = request.query_params.get('prefix')
        if prefix:
            settings = settings.filter(key__startswith=prefix)
        serializer = SettingSerializer(settings, many=True)
        return Response(serializer.data)

    serializer = SettingSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    setting, created = settings_store.upsert_setting(
        serializer.validated_data['key'],
        serializer.validated_data.get('value', ''),
        serializer.validated_data.get('description'),
    )
    create_audit_log(request=request, action='settings_update', model_name='Setting', object_id=setting.id,
                     object_name=setting.key)
    return Response(SettingSerializer(setting).data,
                    status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def setting_detail(request, key):
    """Retrieve, update or delete a setting by key"""
    if request.method == 'DELETE':
        settings_store.delete_setting(key)
        create_audit_log(request=request, action='delete', model_name='Setting', object_id=key, object_name=key)
        return Response(status=status.HTTP_204_NO_CONTENT)

    if request.method == 'GET':
        setting = get_object_or_404(Setting, key=key)
        return Response(SettingSerializer(setting).data)

    if 'value' not in request.data:
        raise ValidationFailed('value is required', field='value')
    setting, _ = settings_store.upsert_setting(key, request.data['value'], request.data.get('description'))
    create_audit_log(request=request, action='settings_update', model_name='Setting', object_id=setting.id,
                     object_name=setting.key)
    return Response(SettingSerializer(setting).data)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def structured_settings(request):
    """Typed settings grouped by section; PUT writes a nested object"""
    if request.method == 'PUT':
        keys = settings_store.update_settings(request.data)
        create_audit_log(request=request, action='settings_update', model_name='Setting', object_id='structured',
                         changes={'keys': keys})
        # Reads straight from the database; cache invalidation runs on commit
        return Response(_fresh_structured())
    return Response(settings_store.get_structured_settings())


@api_view(['PATCH', 'PUT'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def structured_settings_section(request, section):
    """Update one section (general, payments, roles, shipping, taxes, policies)"""
    keys = settings_store.update_section(section, request.data)
    create_audit_log(request=request, action='settings_update', model_name='Setting', object_id=section,
                     changes={'keys': keys})
    return Response(_fresh_structured().get(section, {}))


def _fresh_structured():
    return settings_store.get_structured_settings(use_cache=False)


@api_view(['GET'])
@permission_classes([AllowAny])
def public_settings(request):
    """Storefront-safe settings (no secrets)"""
    return Response(settings_store.get_public_settings())


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    reference = request.query_params.get('reference', None)
    if reference:
        queryset = queryset.filter(object_reference=reference)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at', '-id')
    return paginated_response(request, queryset, AuditLogSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)
    return Response(AuditLogSerializer(audit_log).data)
