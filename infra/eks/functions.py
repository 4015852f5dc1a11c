"""
EKS Module Functions
Creates the EKS control plane, the access entries that let worker roles
join it, and managed node groups
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List, Optional

from infra.specs import ClusterSpec, NodePoolSpec, ScalingSpec, StackConfigError


def default_node_pool(role_name: str) -> NodePoolSpec:
    """Node pool declared when the cluster does not skip its default node group"""
    return NodePoolSpec(
        name="default",
        capacity_type="ON_DEMAND",
        instance_types=("t3.medium",),
        node_role_name=role_name,
        scaling=ScalingSpec(min_size=1, desired_size=2, max_size=2),
    )


def create_eks_cluster(spec: ClusterSpec, role_arn: pulumi.Output[str],
                       subnet_ids: List[pulumi.Output[str]],
                       trusted_roles: Dict[str, Dict[str, any]],
                       depends_on: List[pulumi.Resource] = None,
                       tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS cluster trusting the given node roles

    Args:
        spec: Cluster description
        role_arn: IAM role ARN for the control plane
        subnet_ids: Private subnet IDs the cluster and its nodes live in
        trusted_roles: create_role results keyed by role name
        depends_on: Resources the cluster must wait for (policy attachments)
        tags: Additional tags

    Returns:
        Dict with cluster resource, access entries and outputs
    """
    tags = tags or {}
    spec.validate()
    missing = [name for name in spec.trusted_role_names if name not in trusted_roles]
    if missing:
        raise StackConfigError(f"Cluster {spec.name} trusts undeclared roles: {', '.join(missing)}")

    cluster = aws.eks.Cluster(
        spec.name,
        version=spec.version,
        role_arn=role_arn,
        vpc_config=aws.eks.ClusterVpcConfigArgs(
            subnet_ids=subnet_ids,
            endpoint_private_access=spec.endpoint_private_access,
            endpoint_public_access=spec.endpoint_public_access,
        ),
        access_config=aws.eks.ClusterAccessConfigArgs(
            authentication_mode="API_AND_CONFIG_MAP",
            bootstrap_cluster_creator_admin_permissions=True,
        ),
        tags={
            **tags,
            "Name": spec.name,
            "Module": "eks"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    access_entries = create_access_entries(
        spec.name,
        cluster.name,
        [trusted_roles[name] for name in spec.trusted_role_names],
        tags
    )

    node_groups = {}
    if not spec.skip_default_node_group:
        pool = default_node_pool(spec.trusted_role_names[0])
        node_groups[pool.name] = create_node_group(
            pool,
            cluster_name=cluster.name,
            node_role_arn=trusted_roles[pool.node_role_name]["role_arn"],
            subnet_ids=subnet_ids,
            depends_on=(access_entries
                        + list(trusted_roles[pool.node_role_name].get("policy_attachments", []))),
            tags=tags
        )
    else:
        pulumi.log.info(f"Cluster {spec.name}: default node group skipped")

    return {
        "cluster": cluster,
        "access_entries": access_entries,
        "node_groups": node_groups,
        "cluster_name": cluster.name,
        "cluster_arn": cluster.arn,
        "cluster_endpoint": cluster.endpoint,
        "cluster_certificate_authority_data": cluster.certificate_authority.data,
        "cluster_security_group_id": cluster.vpc_config.cluster_security_group_id
    }


def create_access_entries(name: str, cluster_name: pulumi.Output[str],
                          roles: List[Dict[str, any]],
                          tags: Dict[str, str] = None) -> List[aws.eks.AccessEntry]:
    """
    Create an EC2 access entry per node role so instances assuming it can join

    Args:
        name: Cluster resource name
        cluster_name: EKS cluster name
        roles: create_role results
        tags: Additional tags

    Returns:
        List of access entries, in role order
    """
    tags = tags or {}

    entries = []
    for role in roles:
        role_name = role["spec"].name
        entries.append(aws.eks.AccessEntry(
            f"{name}-{role_name}-access",
            cluster_name=cluster_name,
            principal_arn=role["role_arn"],
            type="EC2_LINUX",
            tags={
                **tags,
                "Name": f"{name}-{role_name}-access",
                "Module": "eks"
            }
        ))
    return entries


def create_node_group(spec: NodePoolSpec, cluster_name: pulumi.Output[str],
                      node_role_arn: pulumi.Output[str],
                      subnet_ids: List[pulumi.Output[str]],
                      depends_on: Optional[List[pulumi.Resource]] = None,
                      tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS managed node group

    Sizing is checked here so a bad min/desired/max never reaches AWS.

    Args:
        spec: Node pool description
        cluster_name: EKS cluster name
        node_role_arn: IAM role ARN for the nodes
        subnet_ids: List of subnet IDs
        depends_on: Resources the node group must wait for
        tags: Additional tags

    Returns:
        Dict with node group resource and outputs
    """
    tags = tags or {}
    spec.validate()

    if not spec.follows_taint_convention():
        if spec.capacity_type == "SPOT":
            pulumi.log.warn(
                f"Node pool {spec.name} uses SPOT capacity without a taint; "
                "any workload may be scheduled onto preemptible nodes")
        else:
            pulumi.log.warn(f"Node pool {spec.name} uses ON_DEMAND capacity but is tainted")

    node_group = aws.eks.NodeGroup(
        spec.name,
        cluster_name=cluster_name,
        node_role_arn=node_role_arn,
        subnet_ids=subnet_ids,
        capacity_type=spec.capacity_type,
        instance_types=list(spec.instance_types),
        disk_size=spec.disk_size,
        scaling_config=aws.eks.NodeGroupScalingConfigArgs(
            desired_size=spec.scaling.desired_size,
            max_size=spec.scaling.max_size,
            min_size=spec.scaling.min_size
        ),
        taints=[
            aws.eks.NodeGroupTaintArgs(key=taint.key, value=taint.value, effect=taint.effect)
            for taint in spec.taints
        ],
        labels=dict(spec.labels),
        tags={
            **tags,
            "Name": spec.name,
            "Module": "eks"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    pulumi.log.info(
        f"Node pool {spec.name}: {spec.capacity_type} {','.join(spec.instance_types)} "
        f"{spec.scaling.min_size}/{spec.scaling.desired_size}/{spec.scaling.max_size}, "
        f"{len(spec.taints)} taint(s)")

    return {
        "node_group": node_group,
        "node_group_arn": node_group.arn,
        "node_group_status": node_group.status
    }


def create_node_groups(specs: List[NodePoolSpec], cluster_result: Dict[str, any],
                       node_roles: Dict[str, Dict[str, any]],
                       subnet_ids: List[pulumi.Output[str]],
                       tags: Dict[str, str] = None) -> Dict[str, Dict[str, any]]:
    """
    Create every explicit node pool for a cluster

    Args:
        specs: Node pool descriptions
        cluster_result: create_eks_cluster result
        node_roles: create_role results keyed by role name
        subnet_ids: Private subnet IDs
        tags: Additional tags

    Returns:
        Dict mapping pool name to the create_node_group result
    """
    node_groups = {}
    for spec in specs:
        if spec.node_role_name not in node_roles:
            raise StackConfigError(f"Node pool {spec.name} uses undeclared role {spec.node_role_name}")
        node_groups[spec.name] = create_node_group(
            spec,
            cluster_name=cluster_result["cluster_name"],
            node_role_arn=node_roles[spec.node_role_name]["role_arn"],
            subnet_ids=subnet_ids,
            depends_on=(cluster_result["access_entries"]
                        + list(node_roles[spec.node_role_name].get("policy_attachments", []))),
            tags=tags
        )
    return node_groups
