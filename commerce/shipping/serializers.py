from rest_framework import serializers
from decimal import Decimal
from .models import ShippingMethod, ShippingZone, ShippingCity


class ShippingMethodSerializer(serializers.ModelSerializer):
    zone_count = serializers.IntegerField(source='zones.count', read_only=True)

    class Meta:
        model = ShippingMethod
        fields = ['id', 'code', 'name', 'description', 'enabled', 'is_express', 'zone_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_code(self, value):
        return value.strip().lower()


class ShippingCitySerializer(serializers.ModelSerializer):
    class Meta:
        model = ShippingCity
        fields = ['id', 'city_town', 'standard_price', 'express_price']


class ShippingCityInputSerializer(serializers.Serializer):
    city_town = serializers.CharField(max_length=150, allow_blank=True)
    standard_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.00'), required=False, default=Decimal('0.00'))
    express_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.00'), required=False, allow_null=True, default=None)


class ShippingZoneSerializer(serializers.ModelSerializer):
    method_code = serializers.CharField(source='method.code', read_only=True)
    method_name = serializers.CharField(source='method.name', read_only=True)
    city_count = serializers.SerializerMethodField()

    class Meta:
        model = ShippingZone
        fields = ['id', 'method', 'method_code', 'method_name', 'county', 'city_count', 'created_at', 'updated_at']

    def get_city_count(self, obj):
        annotated = getattr(obj, 'city_count', None)
        return annotated if annotated is not None else obj.cities.count()


class ShippingZoneDetailSerializer(ShippingZoneSerializer):
    cities = ShippingCitySerializer(many=True, read_only=True)

    class Meta(ShippingZoneSerializer.Meta):
        fields = ShippingZoneSerializer.Meta.fields + ['cities']


class ShippingZoneWriteSerializer(serializers.Serializer):
    method = serializers.PrimaryKeyRelatedField(queryset=ShippingMethod.objects.all())
    county = serializers.CharField(max_length=100)
    cities = ShippingCityInputSerializer(many=True, required=False, default=list)

    def validate(self, attrs):
        queryset = ShippingZone.objects.filter(method=attrs['method'], county__iexact=attrs['county'].strip())
        zone = self.context.get('zone')
        if zone is not None:
            queryset = queryset.exclude(pk=zone.pk)
        if queryset.exists():
            raise serializers.ValidationError(
                {'county': 'This county already has a zone for the method.'}, code='unique'
            )
        return attrs
