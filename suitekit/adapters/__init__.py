"""Provider adapters: one class per backend wire format."""

from suitekit.adapters.base import BaseAdapter
from suitekit.adapters.http_endpoint import HttpEndpointAdapter
from suitekit.adapters.registry import PROVIDERS, PROVIDER_LABELS, get_adapter, list_models

__all__ = [
    "BaseAdapter",
    "HttpEndpointAdapter",
    "PROVIDERS",
    "PROVIDER_LABELS",
    "get_adapter",
    "list_models",
]
