"""Tests for the order-to-server binding."""

import pytest

from core.errors import NotFoundError, RegistryExhaustedError
from proxies.binding import OrderServerBinding


@pytest.fixture
def binding(order_store, registry):
    return OrderServerBinding(order_store, registry)


def test_bind_and_resolve(binding, make_order, make_server):
    order = make_order()
    server = make_server()

    binding.bind(order.id, server.id)

    assert binding.resolve(order.id) == server.id
    assert binding.resolve_server(order.id).id == server.id


def test_bind_is_idempotent(binding, make_order, make_server):
    order = make_order()
    server = make_server()

    binding.bind(order.id, server.id)
    binding.bind(order.id, server.id)

    assert binding.resolve(order.id) == server.id


def test_bind_unknown_order(binding, make_server):
    with pytest.raises(NotFoundError):
        binding.bind(404, make_server().id)


def test_resolve_unbound_and_unknown(binding, make_order):
    assert binding.resolve(make_order().id) is None
    assert binding.resolve(404) is None


def test_bound_server_beats_pin(binding, make_order, make_server):
    order = make_order()
    bound = make_server()
    make_server(is_selected=True)
    binding.bind(order.id, bound.id)

    assert binding.resolve_server(order.id).id == bound.id


def test_preferred_server_beats_binding(binding, make_order, make_server):
    order = make_order()
    bound = make_server()
    preferred = make_server()
    binding.bind(order.id, bound.id)

    assert binding.resolve_server(order.id, preferred_id=preferred.id).id == preferred.id


def test_unknown_preferred_server_falls_back_to_binding(
    binding, make_order, make_server
):
    order = make_order()
    bound = make_server()
    binding.bind(order.id, bound.id)

    assert binding.resolve_server(order.id, preferred_id=999).id == bound.id


def test_stale_binding_falls_back_to_pin(binding, registry, make_order, make_server):
    order = make_order()
    doomed = make_server()
    pinned = make_server(is_selected=True)
    binding.bind(order.id, doomed.id)

    registry.delete(doomed.id)

    # the stale id stays on the order
    assert binding.resolve(order.id) == doomed.id
    assert binding.resolve_server(order.id).id == pinned.id


def test_unbound_order_without_pin_uses_routing(binding, make_order, make_server):
    order = make_order()
    make_server(priority=3)
    routed = make_server(priority=1)

    assert binding.resolve_server(order.id).id == routed.id


def test_empty_registry(binding, make_order):
    with pytest.raises(RegistryExhaustedError):
        binding.resolve_server(make_order().id)


def test_stale_binding_without_pin_heals_selection(
    binding, registry, make_order, make_server
):
    order = make_order()
    doomed = make_server(priority=0)
    survivor = make_server(priority=4)
    binding.bind(order.id, doomed.id)
    registry.delete(doomed.id)

    assert registry.get_selected() is None
    assert binding.resolve_server(order.id).id == survivor.id
    assert registry.get_selected().id == survivor.id
