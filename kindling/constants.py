"""Well known names and labels shared by kind clusters and their nodes."""

DEFAULT_CLUSTER_NAME = "kind"
"""The default cluster context name."""

CLUSTER_LABEL_KEY = "io.k8s.sigs.kind.cluster"
"""Label applied to each node container to identify its cluster."""

NODE_ROLE_KEY = "io.k8s.sigs.kind.role"
"""Label applied to each node container to record its role."""

CONTROL_PLANE_NODE_ROLE_VALUE = "control-plane"
"""Role of a node hosting a Kubernetes control-plane.

In single node clusters control-plane nodes also act as workers.
"""

WORKER_NODE_ROLE_VALUE = "worker"
"""Role of a node hosting a Kubernetes worker."""

EXTERNAL_LOAD_BALANCER_NODE_ROLE_VALUE = "external-load-balancer"
"""Role of a node hosting the API server load balancer; not a Kubernetes node."""

EXTERNAL_ETCD_NODE_ROLE_VALUE = "external-etcd"
"""Role of a node hosting an external etcd; not a Kubernetes node."""