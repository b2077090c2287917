from rest_framework.routers import DefaultRouter

from inventory.views import (
    AdminPartnerViewSet,
    AdminProductViewSet,
    AdminWarehouseViewSet,
    PartnerViewSet,
    ProductViewSet,
    WarehouseViewSet,
)

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="product")
router.register(r"warehouses", WarehouseViewSet, basename="warehouse")
router.register(r"partners", PartnerViewSet, basename="partner")
router.register(r"admin/products", AdminProductViewSet, basename="admin-product")
router.register(r"admin/warehouses", AdminWarehouseViewSet, basename="admin-warehouse")
router.register(r"admin/partners", AdminPartnerViewSet, basename="admin-partner")

urlpatterns = router.urls
