from pathlib import Path

import pytest

from serverless_api.backend.sqlite_state import SQLiteStateBackend
from serverless_api.domain.models import EndpointSpec, GatewayHandle, HandlerHandle, NetworkRef
from serverless_api.errors import ProvisioningError
from serverless_api.topology.builder import build_topology


def open_store(tmp_path: Path) -> SQLiteStateBackend:
    return SQLiteStateBackend(SQLiteStateBackend.db_path_for_dir(tmp_path))


def test_build_records_handler_and_gateway(tmp_path: Path):
    store = open_store(tmp_path)
    topo = build_topology(
        EndpointSpec(name="shop", runtime_layer_version="rt:1", network=NetworkRef(id="vpc-1")),
        store,
    )

    assert store.db_path.exists()

    handlers = store.list_handlers()
    assert [h["id"] for h in handlers] == [topo.handler.id]
    assert handlers[0]["name"] == "shop-handler"
    assert handlers[0]["runtime"] == "provided"
    assert handlers[0]["network_id"] == "vpc-1"

    gateways = store.list_gateways()
    assert len(gateways) == 1
    assert gateways[0]["handler_id"] == topo.handler.id
    assert gateways[0]["address"] == topo.endpoint.address
    assert topo.endpoint.address.startswith("https://gateway-")

    assert store.orphan_handlers() == []


def test_state_survives_reopen(tmp_path: Path):
    build_topology(EndpointSpec(runtime_layer_version="rt:1"), open_store(tmp_path))

    reopened = open_store(tmp_path)
    assert len(reopened.list_handlers()) == 1
    assert len(reopened.list_gateways()) == 1


def test_borrowed_handler_not_recorded(tmp_path: Path):
    store = open_store(tmp_path)
    build_topology(
        EndpointSpec(runtime_layer_version="rt:1", handler=HandlerHandle(id="fn-mine")),
        store,
    )

    assert store.list_handlers() == []
    assert store.list_gateways()[0]["handler_id"] == "fn-mine"


class FailingGatewayStore(SQLiteStateBackend):
    def create_gateway(self, default_route_target, *, name=None):
        raise RuntimeError("gateway limit reached")


def test_failed_gateway_leaves_orphan_handler(tmp_path: Path):
    store = FailingGatewayStore(SQLiteStateBackend.db_path_for_dir(tmp_path))

    with pytest.raises(ProvisioningError) as excinfo:
        build_topology(EndpointSpec(runtime_layer_version="rt:1"), store)

    orphans = store.orphan_handlers()
    assert [o["id"] for o in orphans] == [excinfo.value.allocated_handler.id]

    assert store.delete_handler(orphans[0]["id"]) is True
    assert store.orphan_handlers() == []
    assert store.delete_handler(orphans[0]["id"]) is False


def test_delete_refuses_routed_handler(tmp_path: Path):
    store = open_store(tmp_path)
    topo = build_topology(EndpointSpec(runtime_layer_version="rt:1"), store)

    with pytest.raises(ValueError):
        store.delete_handler(topo.handler.id)


def test_get_address_unknown_gateway(tmp_path: Path):
    store = open_store(tmp_path)
    with pytest.raises(KeyError):
        store.get_address(GatewayHandle(id="gateway-nope", handler_id="h"))


def test_list_handlers_name_filter(tmp_path: Path):
    store = open_store(tmp_path)
    build_topology(EndpointSpec(name="shop", runtime_layer_version="rt:1"), store)
    build_topology(EndpointSpec(name="blog", runtime_layer_version="rt:1"), store)

    assert [h["name"] for h in store.list_handlers(name_contains="blog")] == ["blog-handler"]
    assert len(store.list_handlers(limit=1)) == 1


def test_failed_address_leaves_gateway_and_handler_cleanable(tmp_path: Path):
    store = SQLiteStateBackend(SQLiteStateBackend.db_path_for_dir(tmp_path), address_template="")

    with pytest.raises(ProvisioningError) as excinfo:
        build_topology(EndpointSpec(runtime_layer_version="rt:1"), store)

    err = excinfo.value
    handler_id = err.allocated_handler.id
    gateway_id = err.gateway.id

    assert [o["id"] for o in store.orphan_handlers()] == [handler_id]
    assert [g["id"] for g in store.incomplete_gateways()] == [gateway_id]

    with pytest.raises(ValueError, match=gateway_id):
        store.delete_handler(handler_id)

    assert store.delete_gateway(gateway_id) is True
    assert store.delete_handler(handler_id) is True
    assert store.orphan_handlers() == []
    assert store.incomplete_gateways() == []
    assert store.delete_gateway(gateway_id) is False


def test_published_handler_is_not_orphaned(tmp_path: Path):
    store = open_store(tmp_path)
    build_topology(EndpointSpec(runtime_layer_version="rt:1"), store)

    assert store.orphan_handlers() == []
    assert store.incomplete_gateways() == []


def test_get_handlers_and_gateway_name_filter(tmp_path: Path):
    store = open_store(tmp_path)
    shop = build_topology(EndpointSpec(name="shop", runtime_layer_version="rt:1"), store)
    build_topology(EndpointSpec(name="blog", runtime_layer_version="rt:1"), store)

    assert [h["id"] for h in store.get_handlers([shop.handler.id, "handler-unknown"])] == [shop.handler.id]
    assert store.get_handlers([]) == []
    assert [g["name"] for g in store.list_gateways(name_contains="shop")] == ["shop-gateway"]
