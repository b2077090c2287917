from rest_framework import serializers

from common.utils import to_json_compatible
from ledger.labels import label_payloads, product_counts
from ledger.models import GoodsInward, GoodsOutward, GoodsOutwardItem, LabelBatch, StockUnit, StockUnitStatus


class StockUnitSerializer(serializers.ModelSerializer):
    product_code = serializers.CharField(source="product.product_code", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    status = serializers.ChoiceField(choices=StockUnitStatus.choices, read_only=True)
    dispatched_quantity = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = StockUnit
        fields = [
            "id",
            "company",
            "product",
            "product_code",
            "product_name",
            "warehouse",
            "sequence_number",
            "initial_quantity",
            "remaining_quantity",
            "dispatched_quantity",
            "status",
            "created_from_inward",
            "quality_grade",
            "supplier_number",
            "warehouse_location",
            "manufacturing_date",
            "notes",
            "qr_generated_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


def _unit_spec(data):
    attrs = {key: value for key, value in data.items() if key not in ("product_id", "quantity")}
    return {"product_id": data.get("product_id"), "quantity": data["quantity"], "attrs": attrs}


class UnitSpecSerializer(serializers.Serializer):
    product_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2)
    quality_grade = serializers.CharField(max_length=32, required=False, allow_blank=True)
    supplier_number = serializers.CharField(max_length=64, required=False, allow_blank=True)
    warehouse_location = serializers.CharField(max_length=128, required=False, allow_blank=True)
    manufacturing_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class GoodsInwardCreateSerializer(serializers.Serializer):
    product_id = serializers.UUIDField(required=False, allow_null=True)
    inward_type = serializers.ChoiceField(choices=GoodsInward.InwardType.choices, default=GoodsInward.InwardType.OTHER)
    source_ref = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    partner_id = serializers.UUIDField(required=False, allow_null=True)
    from_warehouse_id = serializers.UUIDField(required=False, allow_null=True)
    inward_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    units = UnitSpecSerializer(many=True)

    def validate(self, attrs):
        from_warehouse_id = attrs.get("from_warehouse_id")
        if attrs["inward_type"] == GoodsInward.InwardType.TRANSFER and not from_warehouse_id:
            raise serializers.ValidationError({"from_warehouse_id": "Transfers must name the source warehouse."})
        if from_warehouse_id and from_warehouse_id == self.context.get("warehouse_id"):
            raise serializers.ValidationError({"from_warehouse_id": "A warehouse cannot transfer stock to itself."})
        return attrs

    def service_kwargs(self):
        data = dict(self.validated_data)
        unit_specs = [_unit_spec(spec) for spec in data.pop("units")]
        return unit_specs, data


class GoodsInwardSerializer(serializers.ModelSerializer):
    partner_name = serializers.CharField(source="partner.name", read_only=True, default=None)
    unit_count = serializers.IntegerField(read_only=True)
    stock_units = StockUnitSerializer(many=True, read_only=True)

    class Meta:
        model = GoodsInward
        fields = [
            "id",
            "company",
            "warehouse",
            "sequence_number",
            "inward_type",
            "source_ref",
            "partner",
            "partner_name",
            "from_warehouse",
            "inward_date",
            "notes",
            "is_cancelled",
            "cancelled_at",
            "cancellation_reason",
            "cancelled_by",
            "created_by",
            "unit_count",
            "stock_units",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class GoodsInwardCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)


class OutwardLineSerializer(serializers.Serializer):
    stock_unit_id = serializers.UUIDField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2)


class GoodsOutwardCreateSerializer(serializers.Serializer):
    outward_type = serializers.ChoiceField(choices=GoodsOutward.OutwardType.choices, default=GoodsOutward.OutwardType.OTHER)
    source_ref = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    partner_id = serializers.UUIDField(required=False, allow_null=True)
    to_warehouse_id = serializers.UUIDField(required=False, allow_null=True)
    outward_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    lines = OutwardLineSerializer(many=True)

    def validate(self, attrs):
        to_warehouse_id = attrs.get("to_warehouse_id")
        if attrs["outward_type"] == GoodsOutward.OutwardType.TRANSFER and not to_warehouse_id:
            raise serializers.ValidationError({"to_warehouse_id": "Transfers must name the destination warehouse."})
        if to_warehouse_id and to_warehouse_id == self.context.get("warehouse_id"):
            raise serializers.ValidationError({"to_warehouse_id": "A warehouse cannot transfer stock to itself."})
        return attrs

    def service_kwargs(self):
        data = dict(self.validated_data)
        lines = [dict(line) for line in data.pop("lines")]
        return lines, data


class GoodsTransferCreateSerializer(serializers.Serializer):
    to_warehouse_id = serializers.UUIDField()
    source_ref = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    transfer_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    lines = OutwardLineSerializer(many=True)

    def validate_to_warehouse_id(self, value):
        if value == self.context.get("warehouse_id"):
            raise serializers.ValidationError("A warehouse cannot transfer stock to itself.")
        return value

    def service_kwargs(self):
        data = dict(self.validated_data)
        lines = [dict(line) for line in data.pop("lines")]
        return lines, data


class GoodsOutwardItemSerializer(serializers.ModelSerializer):
    product = serializers.UUIDField(source="stock_unit.product_id", read_only=True)
    unit_sequence_number = serializers.IntegerField(source="stock_unit.sequence_number", read_only=True)

    class Meta:
        model = GoodsOutwardItem
        fields = ["id", "line_number", "stock_unit", "product", "unit_sequence_number", "quantity_dispatched", "created_at"]
        read_only_fields = fields


class GoodsOutwardSerializer(serializers.ModelSerializer):
    partner_name = serializers.CharField(source="partner.name", read_only=True, default=None)
    line_count = serializers.IntegerField(read_only=True)
    total_quantity = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    items = GoodsOutwardItemSerializer(many=True, read_only=True)

    class Meta:
        model = GoodsOutward
        fields = [
            "id",
            "company",
            "warehouse",
            "sequence_number",
            "outward_type",
            "source_ref",
            "partner",
            "partner_name",
            "to_warehouse",
            "outward_date",
            "notes",
            "created_by",
            "line_count",
            "total_quantity",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class LabelBatchCreateSerializer(serializers.Serializer):
    batch_name = serializers.CharField(max_length=255, allow_blank=True)
    stock_unit_ids = serializers.ListField(child=serializers.CharField(), allow_empty=True)
    template_fields = serializers.ListField(child=serializers.CharField(), required=False, allow_empty=True, allow_null=True)


class LabelBatchSerializer(serializers.ModelSerializer):
    item_count = serializers.IntegerField(read_only=True)
    products = serializers.SerializerMethodField()
    stock_unit_ids = serializers.SerializerMethodField()

    class Meta:
        model = LabelBatch
        fields = [
            "id",
            "company",
            "warehouse",
            "sequence_number",
            "batch_name",
            "fields_selected",
            "created_by",
            "created_at",
            "item_count",
            "products",
            "stock_unit_ids",
        ]
        read_only_fields = fields

    def get_products(self, obj):
        return product_counts(obj)

    def get_stock_unit_ids(self, obj):
        return [item.stock_unit_id for item in obj.items.all()]


class LabelBatchDetailSerializer(LabelBatchSerializer):
    labels = serializers.SerializerMethodField()

    class Meta(LabelBatchSerializer.Meta):
        fields = LabelBatchSerializer.Meta.fields + ["labels"]
        read_only_fields = fields

    def get_labels(self, obj):
        return to_json_compatible(label_payloads(obj))
