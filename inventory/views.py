from django.utils import timezone
from rest_framework import viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.views import scoped_queryset_for_user
from inventory.models import Partner, Product, Warehouse
from inventory.serializers import PartnerSerializer, ProductSerializer, WarehouseSerializer

ADMIN_ACTIONS = ["list", "retrieve", "create", "update", "partial_update", "destroy"]


class AuditedMutationMixin:
    audit_entity = None
    soft_delete = False

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["company_id"] = getattr(self.request.user, "company_id", None)
        return context

    def _audit(self, *, action, instance, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity=self.audit_entity,
            entity_id=instance.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            company_id=instance.company_id,
        )

    def perform_create(self, serializer):
        user = self.request.user
        if not getattr(user, "company_id", None):
            raise ValidationError("Authenticated user must belong to a company to create records.")

        instance = serializer.save(company_id=user.company_id)
        self._audit(action=f"{self.audit_entity}.create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        self._audit(action=f"{self.audit_entity}.update", instance=instance, before_snapshot=before_snapshot, after_snapshot=self.get_serializer(instance).data)

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        self._audit(action=f"{self.audit_entity}.delete", instance=instance, before_snapshot=before_snapshot)
        if self.soft_delete:
            # Stock units keep pointing at soft-deleted products and warehouses.
            instance.deleted_at = timezone.now()
            instance.is_active = False
            instance.save(update_fields=["deleted_at", "is_active", "updated_at"])
        else:
            instance.delete()


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Product.objects.alive().order_by("product_code")
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "ledger.view", "retrieve": "ledger.view"}

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)


class WarehouseViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Warehouse.objects.alive().order_by("name")
    serializer_class = WarehouseSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "ledger.view", "retrieve": "ledger.view"}

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)


class PartnerViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Partner.objects.all().order_by("name")
    serializer_class = PartnerSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "ledger.view", "retrieve": "ledger.view"}

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)


class AdminProductViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Product.objects.alive().order_by("product_code")
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {action: "admin.records.manage" for action in ADMIN_ACTIONS}
    audit_entity = "product"
    soft_delete = True

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)


class AdminWarehouseViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Warehouse.objects.alive().order_by("name")
    serializer_class = WarehouseSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {action: "admin.records.manage" for action in ADMIN_ACTIONS}
    audit_entity = "warehouse"
    soft_delete = True

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)


class AdminPartnerViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Partner.objects.all().order_by("name")
    serializer_class = PartnerSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {action: "admin.records.manage" for action in ADMIN_ACTIONS}
    audit_entity = "partner"

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)
