import logging

from django.db.models import Count, Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from commerce.core.permissions import IsStoreAdmin
from commerce.core.utils import create_audit_log, paginated_response, parse_bool_param
from commerce.orders.models import Order
from commerce.orders.serializers import OrderListSerializer
from .models import Customer, Address
from .serializers import CustomerSerializer, CustomerDetailSerializer, AddressSerializer

logger = logging.getLogger(__name__)


def _search_customers(queryset, search):
    for term in search.split():
        queryset = queryset.filter(
            Q(first_name__icontains=term) |
            Q(last_name__icontains=term) |
            Q(email__icontains=term) |
            Q(phone_number__icontains=term)
        )
    return queryset


def _clear_other_defaults(address):
    """Only one default shipping and one default billing address per customer"""
    if address.customer_id is None:
        return
    others = Address.objects.filter(customer_id=address.customer_id).exclude(pk=address.pk)
    if address.default_shipping:
        others.filter(default_shipping=True).update(default_shipping=False)
    if address.default_billing:
        others.filter(default_billing=True).update(default_billing=False)


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def customer_list_create(request):
    """Paginated customers (``search`` on name, email, phone; ``enabled``) or create one"""
    if request.method == 'GET':
        queryset = Customer.objects.annotate(order_count=Count('orders')).order_by('-created_at', '-id')
        search = request.query_params.get('search', '').strip()
        if search:
            queryset = _search_customers(queryset, search)
        enabled = parse_bool_param(request, 'enabled')
        if enabled is not None:
            queryset = queryset.filter(enabled=enabled)
        return paginated_response(request, queryset, CustomerSerializer)

    serializer = CustomerSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    customer = serializer.save()
    create_audit_log(request=request, action='create', model_name='Customer', object_id=customer.id,
                     object_name=customer.full_name or customer.email, object_reference=customer.email)
    return Response(CustomerSerializer(customer).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def customer_detail(request, pk):
    """Retrieve (with addresses and order count), update or delete a customer"""
    customer = get_object_or_404(
        Customer.objects.annotate(order_count=Count('orders')).prefetch_related('addresses'), pk=pk
    )

    if request.method == 'GET':
        return Response(CustomerDetailSerializer(customer).data)

    if request.method == 'DELETE':
        customer_id = customer.id
        customer.delete()
        create_audit_log(request=request, action='delete', model_name='Customer', object_id=customer_id,
                         object_name=customer.full_name or customer.email, object_reference=customer.email)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = CustomerSerializer(customer, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    serializer.save()
    create_audit_log(request=request, action='update', model_name='Customer', object_id=customer.id,
                     object_name=customer.full_name or customer.email, object_reference=customer.email,
                     changes={'fields': sorted(serializer.validated_data.keys())})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def customer_orders(request, pk):
    """Order history of one customer, newest first"""
    customer = get_object_or_404(Customer, pk=pk)
    orders = Order.objects.filter(customer=customer).select_related('customer').annotate(
        line_count=Count('lines')
    ).order_by('-created_at', '-id')
    return paginated_response(request, orders, OrderListSerializer, default_limit=20)


# Address views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def customer_addresses(request, pk):
    """List or add addresses of a customer"""
    customer = get_object_or_404(Customer, pk=pk)

    if request.method == 'GET':
        return Response(AddressSerializer(customer.addresses.all(), many=True).data)

    serializer = AddressSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    address = serializer.save(customer=customer)
    _clear_other_defaults(address)
    return Response(AddressSerializer(address).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def address_detail(request, pk):
    address = get_object_or_404(Address, pk=pk)

    if request.method == 'GET':
        return Response(AddressSerializer(address).data)

    if request.method == 'DELETE':
        address.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = AddressSerializer(address, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    address = serializer.save()
    _clear_other_defaults(address)
    return Response(AddressSerializer(address).data)
