"""Property-based tests for failover of the control plane elastic IP.

For any mix of healthy and unhealthy node addresses, the elastic IP moves to
the node owning the first healthy address in probe order, and when nothing is
healthy it is not touched at all.
"""

import pytest
from fakes import EIP_ADDRESS, FakeInstances, FakeMetal, FakeProber, addresses, make_node, make_reservation
from hypothesis import given
from hypothesis import strategies as st

from endpoint_manager.exceptions import NoHealthyCandidateError
from endpoint_manager.health import healthz_url
from endpoint_manager.reassignment import ReassignmentEngine
from endpoint_manager.state import PortState

PORT = 6443
EIP_URL = healthz_url(EIP_ADDRESS, PORT)

# per node: list of (address type, probe status or None for a transport error)
node_strategy = st.lists(
    st.tuples(
        st.sampled_from(["Hostname", "InternalIP", "ExternalIP"]),
        st.sampled_from([200, 500, 503, None]),
    ),
    min_size=1,
    max_size=3,
)


def _build(node_specs, assigned_to):
    instances = FakeInstances()
    prober = FakeProber()
    nodes = []
    for i, spec in enumerate(node_specs):
        name = f"cp-{i}"
        pairs = []
        for j, (addr_type, status) in enumerate(spec):
            address = f"cp-{i}-{j}" if addr_type == "Hostname" else f"10.0.{i}.{j + 1}"
            pairs.append((addr_type, address))
            if status is not None:
                prober.set(address, PORT, status)
        instances.addresses[name] = addresses(*pairs)
        instances.instance_ids[name] = f"dev-{i}"
        nodes.append(make_node(name))

    metal = FakeMetal([make_reservation(assigned_to=assigned_to)])
    ports = PortState(desired_port=PORT)
    ports.observe_upstream_port(PORT)
    engine = ReassignmentEngine(metal, instances, prober, ports)
    return engine, metal, prober, nodes


def _first_healthy(node_specs):
    for i, spec in enumerate(node_specs):
        for addr_type, status in spec:
            if addr_type != "Hostname" and status == 200:
                return i
    return None


@given(
    node_specs=st.lists(node_strategy, min_size=1, max_size=4),
    assigned_to=st.sampled_from([(), ("dev-old",)]),
)
def test_elastic_ip_goes_to_first_healthy_node(node_specs, assigned_to):
    """The first healthy probe target wins; with none, nothing changes."""
    engine, metal, prober, nodes = _build(node_specs, assigned_to)
    reservation = metal.list_reservations("proj-1")[0]
    winner = _first_healthy(node_specs)

    if winner is None:
        with pytest.raises(NoHealthyCandidateError):
            engine.reassign(nodes, reservation, EIP_URL)
        assert metal.mutations == []
        assert [a.device_id for a in metal.reservations[0].assignments] == list(assigned_to)
        return

    result = engine.reassign(nodes, reservation, EIP_URL)

    assert result.instance_id == f"dev-{winner}"
    expected = [("assign", f"dev-{winner}", EIP_ADDRESS)]
    if assigned_to:
        expected.insert(0, ("unassign", "asg-dev-old"))
    assert metal.mutations == expected
    assert [a.device_id for a in metal.reservations[0].assignments] == [f"dev-{winner}"]


@given(node_specs=st.lists(node_strategy, min_size=1, max_size=4))
def test_hostnames_and_elastic_ip_are_never_probed(node_specs):
    """Only IP addresses other than the elastic IP are health checked."""
    engine, metal, prober, nodes = _build(node_specs, ("dev-old",))
    reservation = metal.list_reservations("proj-1")[0]

    try:
        engine.reassign(nodes, reservation, EIP_URL)
    except NoHealthyCandidateError:
        pass

    assert EIP_URL not in prober.probed
    assert not any("://cp-" in url for url in prober.probed)
    assert len(prober.probed) == len(set(prober.probed))
