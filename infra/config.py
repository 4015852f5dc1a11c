"""
Configuration management for the EKS platform stack
"""

import pulumi
from typing import Dict, List, Optional

from infra.iam import plan_role
from infra.specs import (
    AccessRuleSpec,
    ClusterSpec,
    DatabaseSpec,
    IngressRuleSpec,
    NetworkSpec,
    NodePoolSpec,
    ScalingSpec,
    SegmentSpec,
    StackSpec,
    StackConfigError,
    TaintSpec,
)


def _get_int(config: pulumi.Config, key: str, default: int) -> int:
    value = config.get_int(key)
    return default if value is None else value


def _get_bool(config: pulumi.Config, key: str, default: bool) -> bool:
    value = config.get_bool(key)
    return default if value is None else value


class Config:
    """Centralized configuration management for the stack"""

    def __init__(self):
        self.config = pulumi.Config()

        # AWS Configuration
        self.aws_region = pulumi.Config("aws").get("region") or "us-east-1"

        # Node roles, one per node pool category
        self.fixed_role_name = self.config.get("fixed_role_name") or "FixedManagedNodeRole"
        self.spot_role_name = self.config.get("spot_role_name") or "SpotManagedNodeRole"

        # VPC Configuration
        self.vpc_name = self.config.get("vpc_name") or "vpc-test"
        self.vpc_cidr = self.config.get("vpc_cidr") or "172.16.0.0/16"
        self.zone_count = _get_int(self.config, "zone_count", 3)
        self.subnet_cidr_mask = _get_int(self.config, "subnet_cidr_mask", 20)

        # Cluster Configuration
        self.cluster_name = self.config.get("cluster_name") or "cluster-test"
        self.cluster_version = self.config.get("cluster_version")
        self.skip_default_node_group = _get_bool(self.config, "skip_default_node_group", True)

        # Node Configuration
        self.node_instance_types = self.config.get_object("node_instance_types") or ["t2.micro"]
        self.node_min_size = _get_int(self.config, "node_min_size", 1)
        self.node_desired_size = _get_int(self.config, "node_desired_size", 1)
        self.node_max_size = _get_int(self.config, "node_max_size", 2)
        self.node_disk_size = _get_int(self.config, "node_disk_size", 20)
        self.spot_taint_key = self.config.get("spot_taint_key") or "spot"
        self.spot_taint_value = self.config.get("spot_taint_value") or "true"

        # Database Configuration
        self.db_name = self.config.get("db_name") or "test"
        self.db_engine_version = self.config.get("db_engine_version") or "14.5"
        self.db_parameter_group_name = self.config.get("db_parameter_group_name") or "default.postgres14"
        self.db_instance_class = self.config.get("db_instance_class") or "db.t3.micro"
        self.db_allocated_storage = _get_int(self.config, "db_allocated_storage", 10)
        self.db_username = self.config.get("db_username") or "postgres"
        self.db_multi_az = _get_bool(self.config, "db_multi_az", False)
        self.db_deletion_protection = _get_bool(self.config, "db_deletion_protection", False)
        self.db_allow_from = self.config.get("db_allow_from") or "vpc"
        if self.db_allow_from not in ("vpc", "cluster"):
            raise StackConfigError(f"db_allow_from must be 'vpc' or 'cluster', got {self.db_allow_from!r}")

        # Additional tags
        self.additional_tags = self.config.get_object("tags") or {}

    @property
    def db_password(self) -> pulumi.Output[str]:
        """Master password, kept as a secret end to end"""
        return self.config.require_secret("db_password")

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Project": pulumi.get_project(),
            "Stack": pulumi.get_stack(),
            "ManagedBy": "pulumi"
        }
        base_tags.update(self.additional_tags)
        return base_tags

    @property
    def role_names(self) -> List[str]:
        return [self.fixed_role_name, self.spot_role_name]

    def node_pools(self) -> List[NodePoolSpec]:
        """On-demand pool open to any workload, spot pool behind a NoSchedule taint"""
        scaling = ScalingSpec(
            min_size=self.node_min_size,
            desired_size=self.node_desired_size,
            max_size=self.node_max_size
        )
        instance_types = tuple(self.node_instance_types)
        return [
            NodePoolSpec(
                name="fixedNodeGroup",
                capacity_type="ON_DEMAND",
                instance_types=instance_types,
                node_role_name=self.fixed_role_name,
                scaling=scaling,
                disk_size=self.node_disk_size,
            ),
            NodePoolSpec(
                name="spotNodeGroup",
                capacity_type="SPOT",
                instance_types=instance_types,
                node_role_name=self.spot_role_name,
                scaling=scaling,
                taints=(TaintSpec(self.spot_taint_key, self.spot_taint_value, "NO_SCHEDULE"),),
                disk_size=self.node_disk_size,
            ),
        ]

    def stack_spec(self, policy_arns: Optional[List[str]] = None) -> StackSpec:
        """
        Describe the whole stack from configuration and validate it

        Raises:
            StackConfigError: if any invariant is broken
        """
        roles = tuple(
            plan_role(name, policy_arns) if policy_arns is not None else plan_role(name)
            for name in self.role_names
        )

        spec = StackSpec(
            roles=roles,
            network=NetworkSpec(
                name=self.vpc_name,
                cidr_block=self.vpc_cidr,
                zone_count=self.zone_count,
                segments=(
                    SegmentSpec("Public", self.subnet_cidr_mask),
                    SegmentSpec("Private", self.subnet_cidr_mask),
                ),
            ),
            cluster=ClusterSpec(
                name=self.cluster_name,
                version=self.cluster_version,
                trusted_role_names=tuple(self.role_names),
                skip_default_node_group=self.skip_default_node_group,
            ),
            node_pools=tuple(self.node_pools()),
            access_rule=AccessRuleSpec(
                name="eksToRDS",
                description="Allow EKS Node connection to RDS",
                ingress=(IngressRuleSpec(
                    port=5432,
                    protocol="tcp",
                    cidr_blocks=(self.vpc_cidr,),
                    description="Postgres from EKSNode",
                ),),
            ),
            database=DatabaseSpec(
                name="rds-test",
                subnet_group_name="rds-subnetgroup-test",
                db_name=self.db_name,
                engine_version=self.db_engine_version,
                instance_class=self.db_instance_class,
                allocated_storage=self.db_allocated_storage,
                parameter_group_name=self.db_parameter_group_name,
                username=self.db_username,
                multi_az=self.db_multi_az,
                deletion_protection=self.db_deletion_protection,
            ),
        )
        spec.validate()
        return spec


def get_config() -> Config:
    """Get the global configuration instance"""
    return Config()
