from __future__ import annotations

import logging
from typing import Dict, List

from zentao_mcp.core.endpoints import format_endpoint
from zentao_mcp.core.errors import TransportError, UpstreamDataError
from zentao_mcp.core.session import SessionManager
from zentao_mcp.models import Product

log = logging.getLogger("zentao_mcp.tools.products")

# the module tree shows up on either page depending on the ZenTao build
MODULE_TREE_ENDPOINTS = ("product_modules", "story_create")


async def get_products(session: SessionManager) -> List[Product]:
    """List products. The index page returns them as an id -> name map."""
    data = await session.authenticated_request(format_endpoint("products"))
    raw = data.get("products") if isinstance(data, dict) else None
    if isinstance(raw, dict):
        return [Product(id=int(pid), name=name) for pid, name in raw.items()]
    if isinstance(raw, list):
        return [Product.model_validate(p) for p in raw if isinstance(p, dict)]
    return []


async def get_product_modules(session: SessionManager, product_id: int) -> Dict[int, str]:
    """
    Module tree of a product as {module_id: name}.
    Returns {} when none of the known pages carries a module map.
    """
    for name in MODULE_TREE_ENDPOINTS:
        try:
            data = await session.authenticated_request(
                format_endpoint(name, product_id=product_id)
            )
        except (TransportError, UpstreamDataError) as exc:
            log.debug(
                "Module tree via %s failed for product %s: %s", name, product_id, exc
            )
            continue

        if not isinstance(data, dict):
            continue
        modules = data.get("modules") or data.get("moduleTree")
        if isinstance(modules, dict) and modules:
            return {
                int(mid): str(title)
                for mid, title in modules.items()
                if str(mid).isdigit() and isinstance(title, str)
            }
    return {}
