from rest_framework.routers import DefaultRouter

from farms.views import FieldCropViewSet, FieldViewSet, HarvestYearViewSet

router = DefaultRouter()
router.register(r"harvest-years", HarvestYearViewSet, basename="harvest-year")
router.register(r"fields", FieldViewSet, basename="field")
router.register(r"field-crops", FieldCropViewSet, basename="field-crop")

urlpatterns = router.urls
