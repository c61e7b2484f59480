import httpx
import pytest
from fastapi.testclient import TestClient

from clb.discovery import RegistryResolver
from clb.errors import DiscoveryError
from clb.registry_client import RegistryClient
from clb.runtime import Instance
from clb.settings import InstanceConfig
from services.hi.app import create_app as create_hi


def _register(client, port, label, **extra):
    body = {"host": "localhost", "port": port, "label": label, **extra}
    return client.post("/services/service-hi/instances", json=body)


def test_register_and_list(registry):
    r = _register(registry, 8762, "FIRST")
    assert r.status_code == 201
    assert r.json()["instance_id"] == "localhost:service-hi:8762"

    _register(registry, 8763, "SECOND")

    r = registry.get("/services/service-hi/instances")
    assert r.status_code == 200
    assert sorted((i["port"], i["label"]) for i in r.json()) == [(8762, "FIRST"), (8763, "SECOND")]

    r = registry.get("/services")
    assert r.json() == [{"name": "service-hi", "instances": 2}]


def test_register_twice_keeps_one_entry(registry):
    _register(registry, 8762, "FIRST")
    _register(registry, 8762, "FIRST", weight=5)

    rows = registry.get("/services/service-hi/instances").json()
    assert len(rows) == 1
    assert rows[0]["weight"] == 5


def test_unknown_service_has_no_instances(registry):
    r = registry.get("/services/nobody/instances")
    assert r.status_code == 200
    assert r.json() == []


def test_invalid_service_name_rejected(registry):
    r = registry.post("/services/Bad_Name/instances", json={"host": "h", "port": 1})
    assert r.status_code == 400


def test_invalid_body_rejected(registry):
    r = registry.post("/services/service-hi/instances", json={"host": "h", "port": 70000})
    assert r.status_code == 400


def test_heartbeat_and_deregister(registry):
    _register(registry, 8762, "FIRST")
    iid = "localhost:service-hi:8762"

    assert registry.put(f"/services/service-hi/instances/{iid}/heartbeat").status_code == 200
    assert registry.delete(f"/services/service-hi/instances/{iid}").status_code == 204
    assert registry.get("/services/service-hi/instances").json() == []

    assert registry.put(f"/services/service-hi/instances/{iid}/heartbeat").status_code == 404
    assert registry.delete(f"/services/service-hi/instances/{iid}").status_code == 404


def test_events_are_recorded(registry):
    _register(registry, 8762, "FIRST")
    registry.delete("/services/service-hi/instances/localhost:service-hi:8762")

    events = registry.get("/events", params={"limit": 10}).json()
    messages = [e["message"] for e in events]
    assert messages[0] == "Deregistered"
    assert any(m.startswith("Registered at localhost:8762") for m in messages)


def test_lease_expiry(registry_db):
    db = registry_db
    db.register_instance("service-hi", "a", "localhost", 8762, "FIRST", 1, lease_duration_s=90, now=1000.0)
    db.register_instance("service-hi", "b", "localhost", 8763, "SECOND", 1, lease_duration_s=90, now=1000.0)
    assert db.renew_lease("service-hi", "b", now=1080.0)

    assert len(db.list_live_instances("service-hi", now=1050.0)) == 2
    assert [i.instance_id for i in db.list_live_instances("service-hi", now=1100.0)] == ["b"]

    assert db.evict_expired(now=1100.0) == 1
    assert [i.instance_id for i in db.list_instances("service-hi")] == ["b"]
    assert "Lease expired" in db.latest_events(1)[0]["message"]


def test_renew_unknown_instance(registry_db):
    assert registry_db.renew_lease("service-hi", "ghost") is False
    assert registry_db.deregister_instance("service-hi", "ghost") is False


def test_registry_resolver(registry, bridge):
    _register(registry, 8762, "FIRST", weight=3)

    resolver = RegistryResolver("http://registry", transport=bridge(registry))
    found = resolver.resolve("service-hi")
    assert found == [Instance(service="service-hi", host="localhost", port=8762, label="FIRST", weight=3)]
    assert resolver.resolve("nobody") == []


def test_registry_resolver_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    resolver = RegistryResolver("http://registry", transport=httpx.MockTransport(handler))
    with pytest.raises(DiscoveryError):
        resolver.resolve("service-hi")


def test_registry_client_lifecycle(registry, bridge):
    me = Instance(service="service-hi", host="localhost", port=8763, label="SECOND")
    rc = RegistryClient("http://registry", me, transport=bridge(registry))

    assert rc.register()
    assert [i["label"] for i in registry.get("/services/service-hi/instances").json()] == ["SECOND"]

    # registry forgot the instance: heartbeat registers it again
    registry.delete(f"/services/service-hi/instances/{me.instance_id}")
    assert rc.heartbeat()
    assert len(registry.get("/services/service-hi/instances").json()) == 1

    assert rc.deregister()
    assert registry.get("/services/service-hi/instances").json() == []


def test_registry_client_survives_registry_outage():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    me = Instance(service="service-hi", host="localhost", port=8762)
    rc = RegistryClient("http://registry", me, transport=httpx.MockTransport(handler))
    assert rc.register() is False
    assert rc.heartbeat() is False
    assert rc.deregister() is False


@pytest.mark.parametrize(
    "payload",
    [
        {"detail": "not a list"},
        [{"port": 8762}],
        ["localhost:8762"],
        [{"host": "localhost", "port": "eighty"}],
    ],
)
def test_registry_resolver_malformed_reply(payload):
    def handler(request):
        return httpx.Response(200, json=payload)

    resolver = RegistryResolver("http://registry", transport=httpx.MockTransport(handler))
    with pytest.raises(DiscoveryError):
        resolver.resolve("service-hi")


def _live(registry):
    return registry.get("/services/service-hi/instances").json()


def test_instance_is_registered_while_running(registry, bridge, wait_for):
    config = InstanceConfig(label="SECOND", port=8763, registry_url="http://registry", lease_renewal_interval_s=0.05)

    with TestClient(create_hi(config, transport=bridge(registry))) as client:
        assert client.get("/hi", params={"name": "x"}).text == "hi x,i am from SECOND instance, port:8763"
        assert wait_for(lambda: [i["label"] for i in _live(registry)] == ["SECOND"])

    assert _live(registry) == []
    events = [e["message"] for e in registry.get("/events").json()]
    assert events[0] == "Deregistered"


def test_registry_client_start_stop_heartbeats(wait_for):
    seen = []

    def handler(request):
        seen.append(request.method)
        return httpx.Response({"POST": 201, "PUT": 200, "DELETE": 204}[request.method], json={})

    me = Instance(service="service-hi", host="localhost", port=8762)
    rc = RegistryClient("http://registry", me, renewal_interval_s=0.02, transport=httpx.MockTransport(handler))

    rc.start()
    assert wait_for(lambda: seen.count("PUT") >= 2)
    rc.stop()
    assert seen[0] == "POST"
    assert seen[-1] == "DELETE"

    # a stopped client can be started again
    rc.start()
    assert wait_for(lambda: seen.count("POST") == 2)
    rc.stop()
    assert seen[-1] == "DELETE"
    assert seen.count("DELETE") == 2
