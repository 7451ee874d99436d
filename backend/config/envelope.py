"""Success envelope for API responses: `{"data": ...}` plus optional `meta`."""

from __future__ import annotations

from rest_framework.pagination import PageNumberPagination
from rest_framework.renderers import JSONRenderer
from rest_framework.response import Response

_ENVELOPE_KEYS = frozenset({"data", "meta"})


def is_enveloped(data) -> bool:
    return isinstance(data, dict) and "data" in data and set(data.keys()) <= _ENVELOPE_KEYS


class EnvelopeJSONRenderer(JSONRenderer):
    """
    Wrap successful JSON responses in a `{ "data": ... }` envelope.

    Error bodies come from `config.exception_handler.custom_exception_handler`
    and pass through untouched, as do 204 responses.
    """

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = renderer_context.get("response") if renderer_context else None
        if response is not None and (response.status_code >= 400 or response.status_code == 204):
            return super().render(data, accepted_media_type, renderer_context)
        if is_enveloped(data):
            return super().render(data, accepted_media_type, renderer_context)
        return super().render({"data": data}, accepted_media_type, renderer_context)


class EnvelopePagination(PageNumberPagination):
    """Page-number pagination returning `{ data: [...], meta: {...} }`."""

    page_size = 25
    page_size_query_param = "page_size"
    max_page_size = 200

    def get_paginated_response(self, data):
        paginator = self.page.paginator
        return Response(
            {
                "data": data,
                "meta": {
                    "page": self.page.number,
                    "page_size": self.get_page_size(self.request) or self.page_size,
                    "total": paginator.count,
                    "total_pages": paginator.num_pages,
                    "has_next": self.page.has_next(),
                    "has_previous": self.page.has_previous(),
                },
            }
        )
