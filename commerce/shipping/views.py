from decimal import Decimal, InvalidOperation
import logging

from django.db.models import Count, Prefetch
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from commerce.core.cache_utils import cached_query, SHIPPING_ZONES_CACHE_TTL, SHIPPING_ZONES_PREFIX
from commerce.core.exceptions import ValidationFailed
from commerce.core.permissions import IsStoreAdmin
from commerce.core.utils import create_audit_log, paginated_response
from .models import ShippingMethod, ShippingZone, ShippingCity
from .serializers import (
    ShippingMethodSerializer, ShippingZoneSerializer, ShippingZoneDetailSerializer,
    ShippingZoneWriteSerializer, ShippingCitySerializer,
)
from .services import save_zone, quote_options

logger = logging.getLogger(__name__)


# Shipping method views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def method_list_create(request):
    """List all shipping methods or create a new one"""
    if request.method == 'GET':
        methods = ShippingMethod.objects.all().order_by('name')
        return Response(ShippingMethodSerializer(methods, many=True).data)

    serializer = ShippingMethodSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    method = serializer.save()
    create_audit_log(request=request, action='create', model_name='ShippingMethod', object_id=method.id,
                     object_name=method.name, object_reference=method.code)
    return Response(ShippingMethodSerializer(method).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def method_detail(request, pk):
    """Retrieve, update or delete a shipping method"""
    method = get_object_or_404(ShippingMethod, pk=pk)

    if request.method == 'GET':
        return Response(ShippingMethodSerializer(method).data)

    if request.method == 'DELETE':
        create_audit_log(request=request, action='delete', model_name='ShippingMethod', object_id=method.id,
                         object_name=method.name, object_reference=method.code)
        method.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = ShippingMethodSerializer(method, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    serializer.save()
    create_audit_log(request=request, action='update', model_name='ShippingMethod', object_id=method.id,
                     object_name=method.name, object_reference=method.code,
                     changes={'fields': sorted(serializer.validated_data.keys())})
    return Response(serializer.data)


# Shipping zone views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def zone_list_create(request):
    """Paginated zones (filter by ``method`` and ``search`` on county) or create a zone"""
    if request.method == 'GET':
        zones = ShippingZone.objects.select_related('method').annotate(
            city_count=Count('cities')
        ).order_by('county', 'id')
        method = request.query_params.get('method')
        if method:
            zones = zones.filter(method_id=method) if method.isdigit() else zones.filter(method__code=method)
        search = request.query_params.get('search')
        if search:
            zones = zones.filter(county__icontains=search)
        return paginated_response(request, zones, ShippingZoneSerializer, default_limit=20)

    serializer = ShippingZoneWriteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    zone = save_zone(data['method'], data['county'], data['cities'])
    create_audit_log(request=request, action='create', model_name='ShippingZone', object_id=zone.id,
                     object_name=zone.county, changes={'cities': zone.cities.count()})
    return Response(ShippingZoneDetailSerializer(zone).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def zone_detail(request, pk):
    """Retrieve a zone with its cities, replace it, or delete it"""
    zone = get_object_or_404(ShippingZone.objects.select_related('method'), pk=pk)

    if request.method == 'GET':
        return Response(ShippingZoneDetailSerializer(zone).data)

    if request.method == 'DELETE':
        create_audit_log(request=request, action='delete', model_name='ShippingZone', object_id=zone.id,
                         object_name=zone.county)
        zone.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = ShippingZoneWriteSerializer(data=request.data, context={'zone': zone})
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    zone = save_zone(data['method'], data['county'], data['cities'], zone=zone)
    create_audit_log(request=request, action='update', model_name='ShippingZone', object_id=zone.id,
                     object_name=zone.county, changes={'cities': zone.cities.count()})
    return Response(ShippingZoneDetailSerializer(zone).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def zone_cities(request, pk):
    """Paginated cities of a zone"""
    zone = get_object_or_404(ShippingZone, pk=pk)
    cities = ShippingCity.objects.filter(zone=zone).order_by('city_town', 'id')
    search = request.query_params.get('search')
    if search:
        cities = cities.filter(city_town__icontains=search)
    return paginated_response(request, cities, ShippingCitySerializer, default_limit=50)


# Storefront views
@cached_query(cache_ttl=SHIPPING_ZONES_CACHE_TTL, key_prefix=SHIPPING_ZONES_PREFIX)
def _storefront_zones():
    methods = ShippingMethod.objects.filter(enabled=True).prefetch_related(
        Prefetch('zones', queryset=ShippingZone.objects.prefetch_related('cities').order_by('county'))
    ).order_by('name')
    payload = []
    for method in methods:
        payload.append({
            'id': method.id,
            'code': method.code,
            'name': method.name,
            'description': method.description,
            'is_express': method.is_express,
            'zones': [
                {
                    'id': zone.id,
                    'county': zone.county,
                    'cities': list(ShippingCitySerializer(zone.cities.all(), many=True).data),
                }
                for zone in method.zones.all()
            ],
        })
    return payload


@api_view(['GET'])
@permission_classes([AllowAny])
def store_shipping_zones(request):
    """
    Without a location: enabled methods with their zones and cities.
    With ``county`` and ``city``: the delivery options for that destination,
    priced for the cart ``subtotal`` when given.
    """
    county = (request.query_params.get('county') or '').strip()
    city = (request.query_params.get('city') or '').strip()
    if county and city:
        try:
            subtotal = Decimal(request.query_params.get('subtotal') or '0')
        except InvalidOperation:
            raise ValidationFailed('subtotal must be a number', field='subtotal')
        if not subtotal.is_finite() or subtotal < 0:
            raise ValidationFailed('subtotal must be zero or more', field='subtotal')
        options = quote_options(county, city, items_total=subtotal)
        return Response({'county': county, 'city': city, 'subtotal': subtotal, 'options': options})
    return Response({'methods': _storefront_zones()})
