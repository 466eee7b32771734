import json

import pytest

from kindling.cri import Mount, MountPropagation, PortMapping, PortMappingProtocol


def test_default_mount_serializes_propagation_only():
    assert Mount().to_dict() == {"propagation": "None"}


def test_mount_from_documented_example():
    data = {
        "containerPath": "/foo",
        "hostPath": "/bar",
        "readOnly": True,
        "selinuxRelabel": False,
        "propagation": "None",
    }
    mount = Mount.from_dict(data)
    assert mount == Mount(
        container_path="/foo",
        host_path="/bar",
        readonly=True,
        selinux_relabel=False,
        propagation=MountPropagation.NONE,
    )
    assert mount.to_dict() == {
        "propagation": "None",
        "containerPath": "/foo",
        "hostPath": "/bar",
        "readOnly": True,
    }


@pytest.mark.parametrize(
    "name, value",
    [
        ("None", MountPropagation.NONE),
        ("HostToContainer", MountPropagation.HOST_TO_CONTAINER),
        ("Bidirectional", MountPropagation.BIDIRECTIONAL),
    ],
)
def test_mount_propagation_names(name, value):
    mount = Mount.from_dict({"propagation": name})
    assert mount.propagation is value
    assert mount.to_dict()["propagation"] == name


def test_mount_missing_propagation_defaults_to_none():
    assert Mount.from_dict({"hostPath": "/x"}).propagation is MountPropagation.NONE


def test_mount_propagation_name_is_case_sensitive():
    with pytest.raises(ValueError, match="unknown propagation value: none"):
        Mount.from_dict({"propagation": "none"})


def test_mount_unknown_propagation_value_cannot_serialize():
    with pytest.raises(ValueError, match="unknown propagation value"):
        Mount(propagation=7).to_dict()


def test_mount_rejects_wrong_field_type():
    with pytest.raises(ValueError):
        Mount.from_dict({"readOnly": "yes"})


def test_mount_json_round_trip():
    mount = Mount(
        container_path="/data",
        host_path="/srv/data",
        selinux_relabel=True,
        propagation=MountPropagation.BIDIRECTIONAL,
    )
    assert Mount.from_dict(json.loads(json.dumps(mount.to_dict()))) == mount


def test_default_port_mapping_serializes_protocol_only():
    assert PortMapping().to_dict() == {"protocol": "TCP"}


def test_port_mapping_from_documented_example():
    data = {
        "containerPort": 80,
        "hostPort": 8000,
        "listenAddress": "127.0.0.1",
        "protocol": "TCP",
    }
    mapping = PortMapping.from_dict(data)
    assert mapping == PortMapping(
        container_port=80,
        host_port=8000,
        listen_address="127.0.0.1",
        protocol=PortMappingProtocol.TCP,
    )
    assert mapping.to_dict() == {
        "protocol": "TCP",
        "containerPort": 80,
        "hostPort": 8000,
        "listenAddress": "127.0.0.1",
    }


def test_port_mapping_protocol_is_case_insensitive():
    mapping = PortMapping.from_dict({"protocol": "udp"})
    assert mapping.protocol is PortMappingProtocol.UDP
    assert mapping.to_dict()["protocol"] == "UDP"


def test_port_mapping_unknown_protocol():
    with pytest.raises(ValueError, match="unknown protocol value: icmp"):
        PortMapping.from_dict({"protocol": "icmp"})


def test_port_mapping_unknown_protocol_value_cannot_serialize():
    with pytest.raises(ValueError, match="unknown protocol value"):
        PortMapping(protocol=9).to_dict()


def test_port_mapping_rejects_string_port():
    with pytest.raises(ValueError):
        PortMapping.from_dict({"hostPort": "8000"})


def test_port_mapping_rejects_out_of_range_port():
    with pytest.raises(ValueError, match="out of range"):
        PortMapping.from_dict({"hostPort": 2**31})


def test_port_mapping_json_round_trip():
    mapping = PortMapping(
        container_port=53, host_port=5353, protocol=PortMappingProtocol.SCTP
    )
    assert PortMapping.from_dict(json.loads(json.dumps(mapping.to_dict()))) == mapping