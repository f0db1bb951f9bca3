from rest_framework import serializers
from rest_framework.validators import UniqueValidator
from .models import Customer, Address


class AddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = Address
        fields = [
            'id', 'customer', 'full_name', 'street_line1', 'street_line2', 'city', 'province',
            'postal_code', 'country', 'phone_number', 'default_shipping', 'default_billing',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['customer', 'created_at', 'updated_at']

    def validate_country(self, value):
        return value.strip().upper()


class CustomerSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(
        validators=[UniqueValidator(queryset=Customer.objects.all(), lookup='iexact',
                                    message='A customer with this email already exists.')]
    )
    full_name = serializers.CharField(read_only=True)
    order_count = serializers.SerializerMethodField()

    class Meta:
        model = Customer
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'phone_number', 'enabled',
            'order_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']

    def validate_email(self, value):
        return value.strip().lower()

    def get_order_count(self, obj):
        annotated = getattr(obj, 'order_count', None)
        return annotated if annotated is not None else obj.orders.count()


class CustomerDetailSerializer(CustomerSerializer):
    addresses = AddressSerializer(many=True, read_only=True)

    class Meta(CustomerSerializer.Meta):
        fields = CustomerSerializer.Meta.fields + ['addresses']
