"""
EKS Module
Control plane with suppressed default capacity, plus explicit managed node groups
"""

from .functions import (
    create_access_entries,
    create_eks_cluster,
    create_node_group,
    create_node_groups,
    default_node_pool,
)

__all__ = [
    "create_access_entries",
    "create_eks_cluster",
    "create_node_group",
    "create_node_groups",
    "default_node_pool",
]
