from django.db import transaction
from django.utils.dateparse import parse_date
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from common.utils import parse_uuid, to_json_compatible
from core.views import scoped_queryset_for_user
from inventory.models import Warehouse
from ledger import allocator, intake, labels, store, transfers
from ledger.activity import stock_unit_activity
from ledger.exceptions import NotFound
from ledger.models import StockUnitStatus
from ledger.serializers import (
    GoodsInwardCancelSerializer,
    GoodsInwardCreateSerializer,
    GoodsInwardSerializer,
    GoodsOutwardCreateSerializer,
    GoodsOutwardSerializer,
    GoodsTransferCreateSerializer,
    LabelBatchCreateSerializer,
    LabelBatchDetailSerializer,
    LabelBatchSerializer,
    StockUnitSerializer,
)

TRUE_VALUES = {"1", "true", "yes"}
FALSE_VALUES = {"0", "false", "no"}


def _parse_bool(value, *, param):
    if value is None or value == "":
        return None
    lowered = value.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValidationError({param: "Expected true or false."})


def _parse_uuid_param(value, *, param):
    if not value:
        return None
    parsed = parse_uuid(value)
    if parsed is None:
        raise ValidationError({param: "Must be a valid UUID."})
    return parsed


class WarehouseScopedMixin:
    """Resolves the ``warehouse_id`` URL kwarg against the caller's company."""

    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    ledger_entity = None

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.warehouse = self.get_warehouse()

    def get_warehouse(self):
        warehouse_id = self.kwargs["warehouse_id"]
        warehouse = scoped_queryset_for_user(Warehouse.objects.alive(), self.request.user).filter(id=warehouse_id).first()
        if warehouse is None:
            raise NotFound("warehouse", [warehouse_id])
        return warehouse

    def get_object(self):
        object_id = parse_uuid(self.kwargs["pk"])
        instance = self.get_queryset().filter(pk=object_id).first() if object_id else None
        if instance is None:
            raise NotFound(self.ledger_entity, [self.kwargs["pk"]])
        return instance

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["warehouse_id"] = self.kwargs.get("warehouse_id")
        return context

    def _date_filters(self):
        params = self.request.query_params
        return {
            "partner_id": _parse_uuid_param(params.get("partner"), param="partner"),
            "date_from": parse_date(params["date_from"]) if params.get("date_from") else None,
            "date_to": parse_date(params["date_to"]) if params.get("date_to") else None,
        }

    def _audit(self, *, action, entity, instance, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity=entity,
            entity_id=instance.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            company_id=self.warehouse.company_id,
        )


class StockUnitViewSet(WarehouseScopedMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = StockUnitSerializer
    permission_action_map = {"list": "ledger.view", "retrieve": "ledger.view", "activity": "ledger.view"}

    def get_queryset(self):
        params = self.request.query_params
        statuses = None
        if params.get("status"):
            statuses = [value.strip() for value in params["status"].split(",") if value.strip()]
            invalid = [value for value in statuses if value not in StockUnitStatus.values]
            if invalid:
                raise ValidationError({"status": f"Unknown status: {', '.join(invalid)}."})

        return store.list_eligible(
            self.warehouse.id,
            product_id=_parse_uuid_param(params.get("product"), param="product"),
            statuses=statuses,
            include_depleted=bool(_parse_bool(params.get("include_depleted"), param="include_depleted")),
            qr_generated=_parse_bool(params.get("qr_generated"), param="qr_generated"),
            inward_id=_parse_uuid_param(params.get("inward"), param="inward"),
        )

    def get_object(self):
        return store.get(self.kwargs["pk"], warehouse_id=self.warehouse.id)

    @action(detail=True, methods=["get"])
    def activity(self, request, warehouse_id=None, pk=None):
        events = stock_unit_activity(pk, warehouse_id=self.warehouse.id)
        return Response({"stock_unit_id": pk, "events": to_json_compatible(events)})


class GoodsInwardViewSet(WarehouseScopedMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = GoodsInwardSerializer
    ledger_entity = "goods_inward"
    permission_action_map = {
        "list": "ledger.view",
        "retrieve": "ledger.view",
        "create": "ledger.inward",
        "cancel": "ledger.inward.cancel",
    }

    def get_queryset(self):
        filters = self._date_filters() if self.action == "list" else {}
        return intake.list_inwards(self.warehouse.id, **filters).prefetch_related("stock_units__product")

    def create(self, request, *args, **kwargs):
        serializer = GoodsInwardCreateSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        unit_specs, options = serializer.service_kwargs()

        with transaction.atomic():
            inward = intake.receive(
                self.warehouse.id,
                unit_specs,
                company_id=self.warehouse.company_id,
                user=request.user,
                **options,
            )
            data = self.get_serializer(self.get_queryset().get(pk=inward.pk)).data
            self._audit(action="goods_inward.create", entity="goods_inward", instance=inward, after_snapshot=data)
        return Response(data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def cancel(self, request, warehouse_id=None, pk=None):
        serializer = GoodsInwardCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            inward = intake.cancel_inward(
                pk,
                warehouse_id=self.warehouse.id,
                reason=serializer.validated_data["reason"],
                user=request.user,
            )
            data = self.get_serializer(self.get_queryset().get(pk=inward.pk)).data
            self._audit(
                action="goods_inward.cancel",
                entity="goods_inward",
                instance=inward,
                before_snapshot={"is_cancelled": False},
                after_snapshot={"is_cancelled": True, "cancellation_reason": inward.cancellation_reason},
            )
        return Response(data)


class GoodsOutwardViewSet(WarehouseScopedMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = GoodsOutwardSerializer
    ledger_entity = "goods_outward"
    permission_action_map = {"list": "ledger.view", "retrieve": "ledger.view", "create": "ledger.outward"}

    def get_queryset(self):
        filters = self._date_filters() if self.action == "list" else {}
        return allocator.list_outwards(self.warehouse.id, **filters).prefetch_related("items__stock_unit")

    def create(self, request, *args, **kwargs):
        serializer = GoodsOutwardCreateSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        lines, options = serializer.service_kwargs()

        with transaction.atomic():
            outward = allocator.allocate(
                self.warehouse.id,
                lines,
                company_id=self.warehouse.company_id,
                user=request.user,
                **options,
            )
            data = self.get_serializer(self.get_queryset().get(pk=outward.pk)).data
            self._audit(action="goods_outward.create", entity="goods_outward", instance=outward, after_snapshot=data)
        return Response(data, status=status.HTTP_201_CREATED)


class GoodsTransferViewSet(WarehouseScopedMixin, viewsets.GenericViewSet):
    """Create-only endpoint; the resulting outward and inward are listed under their own routes."""

    serializer_class = GoodsTransferCreateSerializer
    permission_action_map = {"create": "ledger.transfer"}

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lines, options = serializer.service_kwargs()
        to_warehouse_id = options.pop("to_warehouse_id")

        with transaction.atomic():
            outward, inward = transfers.transfer(
                self.warehouse.id,
                to_warehouse_id,
                lines,
                company_id=self.warehouse.company_id,
                user=request.user,
                **options,
            )
            data = {
                "outward": GoodsOutwardSerializer(
                    allocator.list_outwards(outward.warehouse_id).prefetch_related("items__stock_unit").get(pk=outward.pk)
                ).data,
                "inward": GoodsInwardSerializer(
                    intake.list_inwards(inward.warehouse_id).prefetch_related("stock_units__product").get(pk=inward.pk)
                ).data,
            }
            self._audit(action="goods_transfer.create", entity="goods_outward", instance=outward, after_snapshot=data)
        return Response(data, status=status.HTTP_201_CREATED)


class LabelBatchViewSet(WarehouseScopedMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    ledger_entity = "label_batch"
    permission_action_map = {"list": "ledger.view", "retrieve": "ledger.view", "create": "ledger.label"}

    def get_serializer_class(self):
        if self.action == "retrieve":
            return LabelBatchDetailSerializer
        return LabelBatchSerializer

    def get_queryset(self):
        product_id = None
        if self.action == "list":
            product_id = _parse_uuid_param(self.request.query_params.get("product"), param="product")
        return labels.list_batches(self.warehouse.id, product_id=product_id)

    def create(self, request, *args, **kwargs):
        serializer = LabelBatchCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            batch = labels.create_batch(
                self.warehouse.id,
                serializer.validated_data["batch_name"],
                serializer.validated_data["stock_unit_ids"],
                serializer.validated_data.get("template_fields"),
                company_id=self.warehouse.company_id,
                user=request.user,
            )
            data = LabelBatchSerializer(self.get_queryset().get(pk=batch.pk)).data
            self._audit(action="label_batch.create", entity="label_batch", instance=batch, after_snapshot=data)
        return Response(data, status=status.HTTP_201_CREATED)
