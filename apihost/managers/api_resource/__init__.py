"""API resource registry."""

from apihost.managers.api_resource.registry import ApiResourceRegistry, slugify

__all__ = ["ApiResourceRegistry", "slugify"]
