"""
Stack assembly
Roles -> network -> cluster -> node pools -> database -> outputs
"""

from typing import Any, Dict

from infra.config import Config
from infra.database import create_database
from infra.eks import create_eks_cluster, create_node_groups
from infra.iam import create_cluster_role, create_node_roles
from infra.outputs import export_outputs
from infra.vpc import create_network


def deploy(config: Config) -> Dict[str, Any]:
    """
    Declare every resource of the stack and export its outputs

    Args:
        config: Stack configuration

    Returns:
        Dict with the result of each step
    """
    spec = config.stack_spec()
    tags = config.common_tags

    # 1. Node roles, one per node pool category
    node_roles = create_node_roles([role.name for role in spec.roles], tags=tags)
    cluster_role = create_cluster_role(spec.cluster.name, tags)

    # 2. Network
    network = create_network(spec.network, tags)

    # 3. Cluster on the private subnets, trusting the node roles
    cluster = create_eks_cluster(
        spec.cluster,
        role_arn=cluster_role["role_arn"],
        subnet_ids=network["private_subnet_ids"],
        trusted_roles=node_roles,
        depends_on=[cluster_role["policy_attachment"]],
        tags=tags
    )

    # 4. Node pools
    node_groups = create_node_groups(
        list(spec.node_pools),
        cluster,
        node_roles,
        network["private_subnet_ids"],
        tags
    )

    # 5. Database
    database = create_database(
        spec.access_rule,
        spec.database,
        vpc_id=network["vpc_id"],
        subnet_ids=network["private_subnet_ids"],
        password=config.db_password,
        source_security_group_id=(
            cluster["cluster_security_group_id"] if config.db_allow_from == "cluster" else None
        ),
        tags=tags
    )

    # 6. Outputs
    outputs = export_outputs(cluster, network, database, config.aws_region)

    return {
        "spec": spec,
        "node_roles": node_roles,
        "cluster_role": cluster_role,
        "network": network,
        "cluster": cluster,
        "node_groups": node_groups,
        "database": database,
        "outputs": outputs,
    }
