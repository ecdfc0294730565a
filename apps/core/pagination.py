from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list endpoints."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 100


def paginated_response(request, queryset, serializer_class, context=None):
    """Paginate ``queryset`` and serialize the current page."""
    paginator = StandardResultsSetPagination()
    page = paginator.paginate_queryset(queryset, request)
    serializer = serializer_class(page, many=True, context=context or {'request': request})
    return paginator.get_paginated_response(serializer.data)
