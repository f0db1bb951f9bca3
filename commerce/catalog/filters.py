import django_filters
from django.db.models import F, Q
from .models import Product, Collection


def _truthy(value):
    return str(value).strip().lower() in ('true', '1', 'yes')


class ProductFilter(django_filters.FilterSet):
    """Filter for Product model using django-filter"""

    # Basic search - searches across name, SKU, slug, description and brand
    search = django_filters.CharFilter(method='filter_search', label='Search')

    # Direct field filters
    brand = django_filters.NumberFilter(field_name='brand_id', lookup_expr='exact')
    collection = django_filters.CharFilter(method='filter_collection', label='Collection ID or slug')
    enabled = django_filters.CharFilter(method='filter_enabled', label='Enabled')
    condition = django_filters.ChoiceFilter(choices=Product.CONDITION_CHOICES)
    min_price = django_filters.NumberFilter(field_name='sale_price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='sale_price', lookup_expr='lte')

    # Stock status filters
    in_stock = django_filters.CharFilter(method='filter_in_stock', label='In Stock')
    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')
    out_of_stock = django_filters.CharFilter(method='filter_out_of_stock', label='Out of Stock')

    class Meta:
        model = Product
        fields = ['search', 'brand', 'collection', 'enabled', 'condition', 'min_price', 'max_price',
                  'in_stock', 'low_stock', 'out_of_stock']

    def filter_search(self, queryset, name, value):
        """
        Multi-word search: every word must appear in one of the searched
        fields, in any order.
        """
        words = [w for w in (value or '').split() if w]
        for word in words:
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(sku__icontains=word) |
                Q(slug__icontains=word) |
                Q(description__icontains=word) |
                Q(brand__name__icontains=word)
            )
        return queryset

    def filter_collection(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        if value.isdigit():
            collection = Collection.objects.filter(pk=int(value)).first()
        else:
            collection = Collection.objects.filter(slug=value).first()
        if collection is None:
            return queryset.none()
        # Products of child collections belong to the parent as well
        ids = [collection.id] + list(collection.children.values_list('id', flat=True))
        return queryset.filter(collection_links__collection_id__in=ids).distinct()

    def filter_enabled(self, queryset, name, value):
        if value in (None, ''):
            return queryset
        return queryset.filter(enabled=_truthy(value))

    def filter_in_stock(self, queryset, name, value):
        if _truthy(value):
            return queryset.filter(stock_on_hand__gt=0)
        return queryset

    def filter_low_stock(self, queryset, name, value):
        if _truthy(value):
            return queryset.filter(stock_on_hand__gt=0, stock_on_hand__lte=F('low_stock_threshold'))
        return queryset

    def filter_out_of_stock(self, queryset, name, value):
        if _truthy(value):
            return queryset.filter(stock_on_hand=0)
        return queryset
