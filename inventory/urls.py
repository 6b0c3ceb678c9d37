from django.urls import path
from rest_framework.routers import DefaultRouter

from inventory.views import (
    ProductViewSet,
    StockBalanceExportView,
    StockBalanceView,
    StockEntryViewSet,
    StockMovementViewSet,
)

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="product")
router.register(r"stock/entries", StockEntryViewSet, basename="stock-entry")
router.register(r"stock/movements", StockMovementViewSet, basename="stock-movement")

urlpatterns = [
    path("stock/balances/", StockBalanceView.as_view(), name="stock-balances"),
    path("stock/balances/export/", StockBalanceExportView.as_view(), name="stock-balances-export"),
] + router.urls
