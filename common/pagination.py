from django.conf import settings
from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Page-number pagination for farm record lists.

    ``?page_size=`` is honoured up to ``API_MAX_PAGE_SIZE``. Stock balance
    reports and CSV exports are not paginated.
    """

    page_size_query_param = "page_size"
    max_page_size = getattr(settings, "API_MAX_PAGE_SIZE", 200)
