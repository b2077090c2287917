from rest_framework.routers import SimpleRouter

from ledger.views import GoodsInwardViewSet, GoodsOutwardViewSet, GoodsTransferViewSet, LabelBatchViewSet, StockUnitViewSet

# Mounted under warehouses/<uuid:warehouse_id>/; the warehouses/ router owns that prefix's root.
router = SimpleRouter()
router.register(r"stock-units", StockUnitViewSet, basename="stock-unit")
router.register(r"goods-inwards", GoodsInwardViewSet, basename="goods-inward")
router.register(r"goods-outwards", GoodsOutwardViewSet, basename="goods-outward")
router.register(r"goods-transfers", GoodsTransferViewSet, basename="goods-transfer")
router.register(r"label-batches", LabelBatchViewSet, basename="label-batch")

urlpatterns = router.urls
