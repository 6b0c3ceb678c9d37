from rest_framework.routers import DefaultRouter

from applications.views import ApplicationViewSet, MachineryViewSet, PracticalRecipeViewSet

router = DefaultRouter()
router.register(r"applications", ApplicationViewSet, basename="application")
router.register(r"recipes", PracticalRecipeViewSet, basename="practical-recipe")
router.register(r"machineries", MachineryViewSet, basename="machinery")

urlpatterns = router.urls
