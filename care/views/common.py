"""Helpers shared by the API views."""
from __future__ import annotations

from typing import Callable, Iterable, Optional

from rest_framework import status as http
from rest_framework.response import Response


def ok(data=None, *, pagination: Optional[dict] = None, status: int = http.HTTP_200_OK, **extra) -> Response:
    payload = {'ok': True, 'data': data}
    if pagination is not None:
        payload['pagination'] = pagination
    payload.update(extra)
    return Response(payload, status=status)


def created(data=None, **extra) -> Response:
    return ok(data, status=http.HTTP_201_CREATED, **extra)


def page(items: Iterable, meta: Optional[dict], fmt: Callable) -> Response:
    return ok([fmt(item) for item in items], pagination=meta)


def flag(request, name: str, default: bool = False) -> bool:
    value = request.query_params.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes')
