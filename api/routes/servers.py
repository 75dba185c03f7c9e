"""
Proxy Server Administration Routes

CRUD over the server registry plus pinning, unpinning and usage reset.
Admin authentication is handled in front of this service.
"""

from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from api.deps import get_registry
from api.schemas import ServerCreate, ServerOut, ServerUpdate
from proxies.registry import ServerRegistry

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/", response_model=List[ServerOut])
def list_servers(registry: ServerRegistry = Depends(get_registry)):
    """All servers ordered by (priority, id)."""
    return registry.list_all()


@router.get("/routing", response_model=ServerOut)
def preview_routing(registry: ServerRegistry = Depends(get_registry)):
    """Which server the next new order would be routed to. Read only."""
    server = registry.select_for_routing()
    if server is None:
        raise HTTPException(status_code=503, detail="No proxy server is configured")
    return server


@router.delete("/selection", status_code=204)
def clear_selection(registry: ServerRegistry = Depends(get_registry)):
    """Unpin the preferred server so automatic balancing applies."""
    registry.clear_selected()


@router.get("/{server_id}", response_model=ServerOut)
def get_server(server_id: int, registry: ServerRegistry = Depends(get_registry)):
    server = registry.get_by_id(server_id)
    if server is None:
        raise HTTPException(status_code=404, detail="Server not found")
    return server


@router.post("/", response_model=ServerOut, status_code=201)
def create_server(
    data: ServerCreate,
    request: Request,
    registry: ServerRegistry = Depends(get_registry),
):
    fields = data.model_dump()
    fields["url"] = str(data.url)
    server = registry.create(**fields)
    request.state.server_id = server.id
    return server


@router.put("/{server_id}", response_model=ServerOut)
def update_server(
    server_id: int,
    data: ServerUpdate,
    request: Request,
    registry: ServerRegistry = Depends(get_registry),
):
    fields = data.model_dump(exclude_unset=True)
    if data.url is not None:
        fields["url"] = str(data.url)
    request.state.server_id = server_id
    return registry.update(server_id, **fields)


@router.delete("/{server_id}", status_code=204)
def delete_server(
    server_id: int, request: Request, registry: ServerRegistry = Depends(get_registry)
):
    """Delete a server. The last remaining server cannot be deleted."""
    request.state.server_id = server_id
    registry.delete(server_id)


@router.post("/{server_id}/select", response_model=ServerOut)
def select_server(
    server_id: int, request: Request, registry: ServerRegistry = Depends(get_registry)
):
    """Pin this server; it then receives all new orders regardless of capacity."""
    request.state.server_id = server_id
    return registry.set_selected(server_id)


@router.post("/{server_id}/reset-usage", response_model=ServerOut)
def reset_server_usage(
    server_id: int, request: Request, registry: ServerRegistry = Depends(get_registry)
):
    request.state.server_id = server_id
    if not registry.reset_usage(server_id):
        raise HTTPException(status_code=404, detail="Server not found")
    return registry.get_by_id(server_id)
