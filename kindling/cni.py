"""Computing and atomically writing the CNI network configuration."""

from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass, field
from string import Template

CNI_CONFIG_PATH = "/etc/cni/net.d/10-kindnet.conflist"
"""Where the computed CNI config is written."""

CNI_CONFIG_TEMPLATE = """
{
	"cniVersion": "0.3.1",
	"name": "kindnet",
	"plugins": [
	{
		"type": "ptp",
		"ipMasq": false,
		"ipam": {
			"type": "host-local",
			"dataDir": "/run/cni-ipam-state",
			"routes": [
				{
					"dst": "$default_route"
				}
			],
			"ranges": [
			[
				{
					"subnet": "$pod_cidr"
				}
			]
		]
		}
	},
	{
		"type": "portmap",
		"capabilities": {
			"portMappings": true
		}
	}
	]
}
"""


@dataclass(frozen=True)
class CNIConfigInputs:
    """Values substituted into the CNI config template."""

    pod_cidr: str = ""
    default_route: str = ""


def _is_ipv6_cidr(text: str) -> bool:
    if "/" not in text:
        return False
    try:
        network = ipaddress.ip_network(text, strict=False)
    except ValueError:
        return False
    if network.version != 6:
        return False
    return network.network_address.ipv4_mapped is None


def compute_cni_config_inputs(pod_cidr: str) -> CNIConfigInputs:
    """Return the template inputs for a node's pod CIDR."""
    default_route = "::/0" if _is_ipv6_cidr(pod_cidr) else "0.0.0.0/0"
    return CNIConfigInputs(pod_cidr=pod_cidr, default_route=default_route)


def render_cni_config(inputs: CNIConfigInputs) -> str:
    """Return the CNI config text for ``inputs``."""
    return Template(CNI_CONFIG_TEMPLATE).substitute(
        default_route=inputs.default_route, pod_cidr=inputs.pod_cidr
    )


@dataclass
class CNIConfigWriter:
    """Writes the CNI config, skipping writes whose inputs did not change.

    Not safe for use from several threads at once.
    """

    path: str = CNI_CONFIG_PATH
    last_inputs: CNIConfigInputs = field(default_factory=CNIConfigInputs)

    def write(self, inputs: CNIConfigInputs) -> bool:
        """Write the config for ``inputs``; return False if nothing changed."""
        if inputs == self.last_inputs:
            return False

        # write under an extension CNI ignores, then rename into place atomically
        temp_path = self.path + ".temp"
        with open(temp_path, "w", encoding="utf-8") as handle:
            try:
                handle.write(render_cni_config(inputs))
                handle.flush()
                os.fsync(handle.fileno())
            except BaseException:
                handle.close()
                os.remove(temp_path)
                raise
        os.replace(temp_path, self.path)

        self.last_inputs = inputs
        return True