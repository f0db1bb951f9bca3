import json
import logging

from django.db.models import Count, Prefetch
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from commerce.core.exceptions import ResourceNotFound, ValidationFailed
from commerce.core.permissions import IsStoreAdmin
from commerce.core.utils import create_audit_log, paginated_response
from .filters import OrderFilter
from .models import Order, OrderLine, Payment
from .paystack import verify_webhook_signature
from .serializers import (
    CartSerializer, CheckoutSerializer, OrderDetailSerializer, OrderListSerializer, OrderNotesSerializer,
    OrderStatusSerializer, PaymentInitializeSerializer, PaymentSerializer, PaymentVerifySerializer,
    RecordPaymentSerializer,
)
from .services import (
    checkout, handle_paystack_event, initialize_payment, record_payment, update_order_status,
    validate_cart, verify_payment,
)

logger = logging.getLogger(__name__)

ORDER_ORDERING = {
    'created_at': 'created_at',
    '-created_at': '-created_at',
    'updated_at': 'updated_at',
    '-updated_at': '-updated_at',
    'total': 'total',
    '-total': '-total',
}


def _order_detail_queryset():
    return Order.objects.select_related(
        'customer', 'shipping_address', 'billing_address', 'shipping_method'
    ).prefetch_related(
        Prefetch('lines', queryset=OrderLine.objects.select_related('product')),
        'payments',
    )


def _ordering(request):
    value = request.query_params.get('ordering') or '-created_at'
    if value not in ORDER_ORDERING:
        raise ValidationFailed(f'Unsupported ordering: {value}', field='ordering')
    return [ORDER_ORDERING[value], '-id']


# Admin order views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def order_list(request):
    """Paginated orders; filter by state, customer, date range and search on code or customer"""
    queryset = Order.objects.select_related('customer').annotate(line_count=Count('lines'))
    order_filter = OrderFilter(request.query_params, queryset=queryset)
    if not order_filter.is_valid():
        raise ValidationFailed('Invalid filters', details=order_filter.errors)
    return paginated_response(request, order_filter.qs.order_by(*_ordering(request)), OrderListSerializer)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def order_detail(request, pk):
    """Order with lines, addresses and payments; PATCH edits the internal notes"""
    order = get_object_or_404(_order_detail_queryset(), pk=pk)

    if request.method == 'PATCH':
        serializer = OrderNotesSerializer(order, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        create_audit_log(request=request, action='update', model_name='Order', object_id=order.id,
                         object_name=f"Order {order.code}", object_reference=order.code,
                         changes={'fields': ['notes']})

    return Response(OrderDetailSerializer(order).data)


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def order_status(request, pk):
    """Move an order along its state machine"""
    order = get_object_or_404(Order, pk=pk)
    serializer = OrderStatusSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    new_state = serializer.validated_data['state']

    previous = order.state
    order, changed = update_order_status(order, new_state)
    if changed:
        create_audit_log(
            request=request,
            action='order_cancel' if new_state == Order.CANCELLED else 'order_status',
            model_name='Order',
            object_id=order.id,
            object_name=f"Order {order.code}",
            object_reference=order.code,
            changes={'state': {'old': previous, 'new': new_state}},
        )
    return Response(OrderDetailSerializer(get_object_or_404(_order_detail_queryset(), pk=order.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def order_cancel(request, pk):
    """Cancel an order and restore its stock"""
    order = get_object_or_404(Order, pk=pk)
    previous = order.state
    order, changed = update_order_status(order, Order.CANCELLED)
    if changed:
        create_audit_log(request=request, action='order_cancel', model_name='Order', object_id=order.id,
                         object_name=f"Order {order.code}", object_reference=order.code,
                         changes={'state': {'old': previous, 'new': Order.CANCELLED}})
    return Response(OrderDetailSerializer(get_object_or_404(_order_detail_queryset(), pk=order.pk)).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def order_payments(request, pk):
    """List an order's payments or record an offline payment"""
    order = get_object_or_404(Order, pk=pk)

    if request.method == 'GET':
        return Response(PaymentSerializer(order.payments.all(), many=True).data)

    serializer = RecordPaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    payment = record_payment(
        order,
        reference=data['reference'],
        amount=data['amount'],
        status=data['status'],
        method=data['method'],
        transaction_id=data['transaction_id'],
    )
    create_audit_log(request=request, action='payment_add', model_name='Payment', object_id=payment.id,
                     object_name=f"Payment for Order {order.code}", object_reference=payment.reference or order.code,
                     changes={'amount': str(payment.amount), 'method': payment.method, 'state': payment.state})
    return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStoreAdmin])
def payment_list(request):
    """All payments, newest first; filter by ``state``, ``method`` or ``order``"""
    payments = Payment.objects.select_related('order').order_by('-created_at', '-id')
    for param in ('state', 'method'):
        value = request.query_params.get(param)
        if value:
            payments = payments.filter(**{param: value})
    order_id = request.query_params.get('order')
    if order_id:
        if not order_id.isdigit():
            raise ValidationFailed('order must be an integer', field='order')
        payments = payments.filter(order_id=int(order_id))
    return paginated_response(request, payments, PaymentSerializer)


# Storefront views
@api_view(['POST'])
@permission_classes([AllowAny])
def store_checkout(request):
    """Place an order from a cart"""
    serializer = CheckoutSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    order = checkout(serializer.validated_data)
    create_audit_log(request=request, action='order_checkout', model_name='Order', object_id=order.id,
                     object_name=f"Order {order.code}", object_reference=order.code,
                     changes={'total': str(order.total), 'lines': order.lines.count()})
    return Response(OrderDetailSerializer(get_object_or_404(_order_detail_queryset(), pk=order.pk)).data,
                    status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
def store_validate_cart(request):
    serializer = CartSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    return Response(validate_cart(serializer.validated_data['items']))


@api_view(['GET'])
@permission_classes([AllowAny])
def store_order_lookup(request, code):
    """Order by code; the customer email must match"""
    email = (request.query_params.get('email') or '').strip()
    if not email:
        raise ValidationFailed('email is required', field='email')
    order = _order_detail_queryset().filter(code__iexact=code, customer__email__iexact=email).first()
    if order is None:
        raise ResourceNotFound('Order not found')
    return Response(OrderDetailSerializer(order).data)


@api_view(['POST'])
@permission_classes([AllowAny])
def store_payment_initialize(request):
    """Start a Paystack payment for an order placed by the given email"""
    serializer = PaymentInitializeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    order = Order.objects.select_related('customer').filter(
        code__iexact=data['order_code'], customer__email__iexact=data['email']
    ).first()
    if order is None:
        raise ResourceNotFound('Order not found', field='order_code')
    result = initialize_payment(order, data['email'], callback_url=data['callback_url'] or None)
    return Response(result, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
def store_payment_verify(request):
    """Re-check a payment with Paystack, e.g. from the checkout callback page"""
    serializer = PaymentVerifySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    payment = verify_payment(serializer.validated_data['reference'])
    return Response({
        'reference': payment.reference,
        'state': payment.state,
        'order_code': payment.order.code,
        'order_state': payment.order.state,
    })


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def store_paystack_webhook(request):
    """Paystack webhook; the signature covers the raw request body"""
    raw_body = request.body
    signature = request.META.get('HTTP_X_PAYSTACK_SIGNATURE', '')
    if not verify_webhook_signature(raw_body, signature):
        logger.warning("Rejected Paystack webhook with an invalid signature")
        raise PermissionDenied('Invalid signature')

    try:
        payload = json.loads(raw_body.decode('utf-8'))
    except (UnicodeDecodeError, ValueError):
        raise ValidationFailed('Webhook body is not valid JSON')
    if not isinstance(payload, dict):
        raise ValidationFailed('Webhook body must be a JSON object')

    logger.info(f"Paystack webhook received: event={payload.get('event')}")
    payment = handle_paystack_event(payload)
    return Response({'status': 'ok', 'payment': payment.id if payment else None})
