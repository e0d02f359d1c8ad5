"""
Manifest export.

Renders the objects the reconciler applies as multi-document YAML, and reads
such documents back into client models.
"""

from typing import Any, Dict, List, Optional

import yaml
from kubernetes import client

DOCUMENT_SEPARATOR = "\n---\n\n"

# kind -> client model used when loading exported documents back
_MODEL_TYPES = {
    "Deployment": "V1Deployment",
    "StatefulSet": "V1StatefulSet",
    "Service": "V1Service",
    "Namespace": "V1Namespace",
    "PersistentVolumeClaim": "V1PersistentVolumeClaim",
}

_api_client: Optional[client.ApiClient] = None


def _get_api_client() -> client.ApiClient:
    global _api_client
    if _api_client is None:
        _api_client = client.ApiClient()
    return _api_client


def to_dict(obj: Any) -> Dict[str, Any]:
    """Wire representation of a client model (camelCase keys, unset fields dropped)."""
    return _get_api_client().sanitize_for_serialization(obj)


def to_yaml(obj: Any) -> str:
    return yaml.safe_dump(to_dict(obj), sort_keys=False, default_flow_style=False, width=float("inf"))


def export_manifests(objects: List[Any]) -> str:
    """Render objects as one YAML document each, in the order given."""
    return DOCUMENT_SEPARATOR.join(to_yaml(obj) for obj in objects if obj is not None)


_PRIMITIVES = {"str": str, "int": int, "float": float, "bool": bool}


def from_dict(data: Any, type_name: str) -> Any:
    """
    Build a client model from its wire representation.

    Walks the generated models' openapi_types / attribute_map, the same
    metadata sanitize_for_serialization uses in the other direction.
    """
    if data is None:
        return None
    if type_name.startswith("list["):
        return [from_dict(item, type_name[5:-1]) for item in data]
    if type_name.startswith("dict("):
        value_type = type_name[5:-1].split(", ", 1)[1]
        return {key: from_dict(value, value_type) for key, value in data.items()}
    if type_name in _PRIMITIVES:
        return _PRIMITIVES[type_name](data)
    model = getattr(client, type_name, None)
    if model is None:
        # "object" (int-or-string ports), datetime and other free-form values
        return data
    return model(**{
        attribute: from_dict(data[key], model.openapi_types[attribute])
        for attribute, key in model.attribute_map.items()
        if key in data
    })


def load_manifests(text: str) -> List[Any]:
    """Parse exported YAML back into client models; unknown kinds are returned as dicts."""
    objects = []
    for document in yaml.safe_load_all(text):
        if not document:
            continue
        model = _MODEL_TYPES.get(document.get("kind"))
        if model is None:
            objects.append(document)
            continue
        objects.append(from_dict(document, model))
    return objects
