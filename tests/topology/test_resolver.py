import pytest

from relaychain.config.models import NodeSpec
from relaychain.errors import ValidationError
from relaychain.topology.resolver import Role, resolve


def _nodes(n):
    return [NodeSpec(address=f"10.0.0.{i + 1}", credential="pw") for i in range(n)]


@pytest.mark.parametrize("n", range(1, 11))
def test_only_last_node_is_terminal_and_next_hops_chain(n):
    nodes = _nodes(n)
    hops = resolve(nodes)

    assert [h.index for h in hops] == list(range(n))
    assert [h.role for h in hops].count(Role.TERMINAL) == 1
    assert hops[-1].role is Role.TERMINAL
    assert hops[-1].next_hop is None
    for i in range(n - 1):
        assert hops[i].role is Role.INTERMEDIATE
        assert hops[i].next_hop == nodes[i + 1].address


def test_resolve_is_pure():
    nodes = _nodes(3)
    assert resolve(nodes) == resolve(nodes)
    assert [n.address for n in nodes] == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]


def test_empty_list_rejected():
    with pytest.raises(ValidationError):
        resolve([])


def test_duplicate_addresses_rejected():
    nodes = [NodeSpec(address="10.0.0.1"), NodeSpec(address="10.0.0.1")]
    with pytest.raises(ValidationError, match="duplicate"):
        resolve(nodes)
