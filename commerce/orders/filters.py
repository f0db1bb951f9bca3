import django_filters
from django.db.models import Q
from .models import Order


class OrderFilter(django_filters.FilterSet):
    """Admin order list filters"""
    search = django_filters.CharFilter(method='filter_search', label='Code, customer name or email')
    state = django_filters.MultipleChoiceFilter(choices=Order.STATE_CHOICES)
    customer = django_filters.NumberFilter(field_name='customer_id')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')
    min_total = django_filters.NumberFilter(field_name='total', lookup_expr='gte')
    max_total = django_filters.NumberFilter(field_name='total', lookup_expr='lte')

    class Meta:
        model = Order
        fields = ['search', 'state', 'customer', 'date_from', 'date_to', 'min_total', 'max_total']

    def filter_search(self, queryset, name, value):
        for word in (value or '').split():
            queryset = queryset.filter(
                Q(code__icontains=word) |
                Q(customer__first_name__icontains=word) |
                Q(customer__last_name__icontains=word) |
                Q(customer__email__icontains=word)
            )
        return queryset
