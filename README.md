# kindling

kindling works with local Kubernetes clusters whose "nodes" are Docker
containers. It drives the `docker` command line on your machine, so Docker
must be installed and running for anything that touches containers.

## Installation

```
pip install .
```

With the test requirements:

```
pip install .[test]
```

## Command line

```
kindling version
kindling get clusters
kindling get nodes --name kind
kindling --loglevel debug get clusters
```

- `version` prints the tool's version (`v0.6.0-alpha`).
- `get clusters` lists every cluster that has node containers.
- `get nodes` lists the node containers of one cluster, chosen with
  `--name` (default `kind`). An unknown cluster is an error.
- `--loglevel` accepts `panic`, `fatal`, `error`, `warn`, `warning`, `info`,
  `debug` or `trace` and defaults to `warning`. Any other value logs a warning
  and falls back to `warning`. Log lines go to standard output.

The command exits with status 1 when a command fails.

## Library

### Running commands

`kindling.exec` runs commands locally; `Node` runs them inside a node
container through `docker exec`. Failures raise `kindling.exec.CommandError`.

```python
from kindling import exec as kexec
from kindling.node import Node

lines = kexec.combined_output_lines(kexec.command("docker", "ps"))

node = Node("kind-control-plane")
print(node.kube_version())
print(node.role())
ipv4, ipv6 = node.ip()
```

`Node` also offers `copy_to`, `copy_from`, `ports`, `write_file`, `image_id`,
`load_image_archive` and `enable_ipv6`; errors raise `kindling.node.NodeError`.

### Clusters and nodes

```python
from kindling import nodes
from kindling.cli import list_clusters, is_known

print(list_clusters())
if is_known("kind"):
    all_nodes = nodes.list_by_cluster()["kind"]
    bootstrap = nodes.bootstrap_control_plane_node(all_nodes)
```

`kindling.nodes` also lists nodes (`list_nodes`), selects them by role
(`select_nodes_by_role`, `control_plane_nodes`,
`secondary_control_plane_nodes`, `external_load_balancer_node`), starts node
containers (`create_node`, `create_worker_node`), removes them (`delete`) and
waits for control plane nodes to report Ready (`wait_for_ready`).

### Docker helpers

```python
from kindling.docker import split_image

split_image("alpine")                      # ("alpine", "latest")
split_image("k8s.gcr.io/coredns:1.1.3")    # ("k8s.gcr.io/coredns", "1.1.3")
```

`kindling.docker` wraps `docker cp`, `inspect`, `image inspect`,
`network inspect`, `kill`, `pull` (with retries), `save` and the userns-remap
check. `kindling.dockerrun` turns `kindling.cri.Mount` and
`kindling.cri.PortMapping` values into `docker run` flags and runs containers.

### Cluster configuration

```python
from kindling.config import Cluster, set_defaults_cluster

cluster = Cluster.from_dict({"networking": {"ipFamily": "ipv6"}})
set_defaults_cluster(cluster)
print(cluster.networking.pod_subnet)       # fd00:10:244::/64
```

Configurations are read from and written to plain dictionaries with
`from_dict` and `to_dict`; reading a file is left to the caller.

### Image archives

```python
from kindling.archive import edit_archive_repositories, get_archive_tags

print(get_archive_tags("image.tar"))
with open("image.tar", "rb") as src, open("renamed.tar", "wb") as dst:
    edit_archive_repositories(src, dst, lambda repo: "example/" + repo)
```

Malformed archives raise `kindling.archive.ArchiveError`.

### CNI configuration

```python
from kindling.cni import CNIConfigWriter, compute_cni_config_inputs

writer = CNIConfigWriter("/etc/cni/net.d/10-kindnet.conflist")
writer.write(compute_cni_config_inputs("10.244.0.0/24"))
```

`write` returns `False` and writes nothing when the inputs equal the last ones
written. Otherwise it writes to a temporary file and renames it into place,
so the finished configuration appears all at once.

## What kindling does not do

- There is no command to create or delete a cluster, export logs, print a
  kubeconfig, load images into nodes or generate shell completions. The
  library can start and remove individual node containers, but it does not
  bootstrap Kubernetes on them, set up a load balancer or write a kubeconfig.
- There is no networking daemon: kindling renders and writes the CNI
  configuration, but it does not watch the cluster, add routes between nodes
  or manage masquerade rules.