"""
Pulumi modules for the EKS platform stack
"""

from .iam import create_node_roles, create_role
from .vpc import create_network
from .eks import create_eks_cluster, create_node_groups
from .database import create_database
from .outputs import export_outputs

__all__ = [
    "create_node_roles",
    "create_role",
    "create_network",
    "create_eks_cluster",
    "create_node_groups",
    "create_database",
    "export_outputs",
]
