from rest_framework import serializers

from inventory.models import Partner, Product, Warehouse


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = [
            "id",
            "company",
            "product_code",
            "name",
            "measuring_unit",
            "stock_type",
            "hsn_code",
            "material",
            "color",
            "gsm",
            "selling_price_per_unit",
            "is_active",
            "deleted_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "company", "deleted_at", "created_at", "updated_at"]

    def validate_product_code(self, value):
        company_id = self.context.get("company_id")
        queryset = Product.objects.filter(company_id=company_id, product_code=value)
        if self.instance is not None:
            queryset = queryset.exclude(id=self.instance.id)
        if company_id and queryset.exists():
            raise serializers.ValidationError("A product with this code already exists in your company.")
        return value

    def validate(self, attrs):
        # Stock units already recorded depend on the numbering rules of the stock type.
        if self.instance is not None and "stock_type" in attrs and attrs["stock_type"] != self.instance.stock_type:
            if self.instance.stock_units.exists():
                raise serializers.ValidationError({"stock_type": "Stock type cannot change once stock units exist."})
        return attrs


class WarehouseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Warehouse
        fields = ["id", "company", "name", "is_active", "deleted_at", "created_at", "updated_at"]
        read_only_fields = ["id", "company", "deleted_at", "created_at", "updated_at"]


class PartnerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Partner
        fields = ["id", "company", "name", "partner_type", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "company", "created_at", "updated_at"]
