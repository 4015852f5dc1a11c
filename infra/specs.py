"""
Stack Descriptions
Immutable records describing every resource the stack declares, plus the
build-time checks run before anything is handed to Pulumi
"""

import ipaddress
import json
from dataclasses import dataclass
from typing import List, Optional, Tuple


CAPACITY_TYPES = ("ON_DEMAND", "SPOT")
TAINT_EFFECTS = ("NO_SCHEDULE", "NO_EXECUTE", "PREFER_NO_SCHEDULE")
VISIBILITIES = ("Public", "Private")


class StackConfigError(ValueError):
    """Raised when the stack description breaks an invariant"""


@dataclass(frozen=True)
class PolicyAttachmentSpec:
    role_name: str
    policy_arn: str
    name: str


@dataclass(frozen=True)
class RoleSpec:
    name: str
    attachments: Tuple[PolicyAttachmentSpec, ...] = ()
    trusted_service: str = "ec2.amazonaws.com"

    def assume_role_policy(self) -> str:
        """Trust policy allowing the compute service to assume this role"""
        return json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Action": "sts:AssumeRole",
                "Effect": "Allow",
                "Principal": {"Service": self.trusted_service},
            }],
        })

    def validate(self):
        if not self.name:
            raise StackConfigError("Role name must not be empty")
        for attachment in self.attachments:
            if attachment.role_name != self.name:
                raise StackConfigError(
                    f"Attachment {attachment.name} belongs to {attachment.role_name}, not {self.name}")


@dataclass(frozen=True)
class SegmentSpec:
    visibility: str
    cidr_mask: int


@dataclass(frozen=True)
class SubnetPlan:
    name: str
    zone_index: int
    visibility: str
    cidr_block: str


@dataclass(frozen=True)
class NetworkSpec:
    name: str
    cidr_block: str
    zone_count: int = 3
    segments: Tuple[SegmentSpec, ...] = (
        SegmentSpec("Public", 20),
        SegmentSpec("Private", 20),
    )

    def validate(self):
        try:
            network = ipaddress.ip_network(self.cidr_block)
        except ValueError as e:
            raise StackConfigError(f"Invalid VPC CIDR {self.cidr_block!r}: {e}") from e
        if self.zone_count < 1:
            raise StackConfigError(f"zone_count must be >= 1, got {self.zone_count}")
        if not self.segments:
            raise StackConfigError("At least one subnet segment is required")
        for segment in self.segments:
            if segment.visibility not in VISIBILITIES:
                raise StackConfigError(f"Unknown subnet visibility {segment.visibility!r}")
            if not network.prefixlen < segment.cidr_mask <= network.max_prefixlen:
                raise StackConfigError(
                    f"Subnet mask /{segment.cidr_mask} does not fit inside {self.cidr_block}")
        # Raises when the blocks run past the end of the range
        self.subnet_plan()

    def subnet_plan(self) -> List[SubnetPlan]:
        """
        Carve one subnet per segment per zone out of the VPC range

        Blocks are allocated zone-major (zone 0 segments first) and each one
        starts at the first address after the previous block, aligned to its
        own mask, so no two blocks overlap.

        Returns:
            List of SubnetPlan in allocation order
        """
        network = ipaddress.ip_network(self.cidr_block)
        cursor = int(network.network_address)
        end = int(network.broadcast_address)
        repeated = {v for v in VISIBILITIES
                    if sum(s.visibility == v for s in self.segments) > 1}
        plans = []
        for zone in range(self.zone_count):
            for index, segment in enumerate(self.segments):
                size = 2 ** (network.max_prefixlen - segment.cidr_mask)
                # Align to block size
                start = -(-cursor // size) * size
                if start + size - 1 > end:
                    raise StackConfigError(
                        f"{self.cidr_block} has no room for {self.zone_count} zones of "
                        f"{len(self.segments)} segments")
                block = type(network)((start, segment.cidr_mask))
                name = f"{self.name}-{segment.visibility.lower()}-{zone + 1}"
                if segment.visibility in repeated:
                    name = f"{name}-{index + 1}"
                plans.append(SubnetPlan(
                    name=name,
                    zone_index=zone,
                    visibility=segment.visibility,
                    cidr_block=str(block),
                ))
                cursor = start + size
        return plans


@dataclass(frozen=True)
class ScalingSpec:
    min_size: int
    desired_size: int
    max_size: int

    def validate(self):
        if min(self.min_size, self.desired_size, self.max_size) < 0:
            raise StackConfigError(f"Node pool sizes must be >= 0: {self}")
        if not self.min_size <= self.desired_size <= self.max_size:
            raise StackConfigError(
                f"Node pool sizes must satisfy min <= desired <= max: "
                f"{self.min_size}/{self.desired_size}/{self.max_size}")


@dataclass(frozen=True)
class TaintSpec:
    key: str
    value: str
    effect: str = "NO_SCHEDULE"

    def validate(self):
        if not self.key:
            raise StackConfigError("Taint key must not be empty")
        if self.effect not in TAINT_EFFECTS:
            raise StackConfigError(f"Unknown taint effect {self.effect!r}")


@dataclass(frozen=True)
class NodePoolSpec:
    name: str
    capacity_type: str
    instance_types: Tuple[str, ...]
    node_role_name: str
    scaling: ScalingSpec
    taints: Tuple[TaintSpec, ...] = ()
    labels: Tuple[Tuple[str, str], ...] = ()
    disk_size: int = 20

    def validate(self):
        if self.capacity_type not in CAPACITY_TYPES:
            raise StackConfigError(f"Unknown capacity type {self.capacity_type!r} for {self.name}")
        if not self.instance_types:
            raise StackConfigError(f"Node pool {self.name} needs at least one instance type")
        if not self.node_role_name:
            raise StackConfigError(f"Node pool {self.name} has no node role")
        self.scaling.validate()
        for taint in self.taints:
            taint.validate()

    def follows_taint_convention(self) -> bool:
        """Spot pools carry a taint so workloads opt in; on-demand pools carry none"""
        if self.capacity_type == "SPOT":
            return bool(self.taints)
        return not self.taints


@dataclass(frozen=True)
class ClusterSpec:
    name: str
    trusted_role_names: Tuple[str, ...]
    version: Optional[str] = None
    skip_default_node_group: bool = True
    endpoint_public_access: bool = True
    endpoint_private_access: bool = False

    @property
    def service_role_name(self) -> str:
        """Name of the IAM role the control plane assumes"""
        return f"{self.name}-cluster-role"

    def validate(self):
        if not self.trusted_role_names:
            raise StackConfigError(f"Cluster {self.name} must trust at least one node role")


@dataclass(frozen=True)
class IngressRuleSpec:
    port: int
    protocol: str
    cidr_blocks: Tuple[str, ...]
    description: str = ""


@dataclass(frozen=True)
class EgressRuleSpec:
    from_port: int
    to_port: int
    protocol: str
    cidr_blocks: Tuple[str, ...]


@dataclass(frozen=True)
class AccessRuleSpec:
    name: str
    description: str
    ingress: Tuple[IngressRuleSpec, ...]
    egress: Tuple[EgressRuleSpec, ...] = ()

    def validate(self):
        for rule in self.ingress:
            if not 0 <= rule.port <= 65535:
                raise StackConfigError(f"Invalid port {rule.port} in {self.name}")


@dataclass(frozen=True)
class DatabaseSpec:
    name: str
    subnet_group_name: str
    db_name: str = "test"
    engine: str = "postgres"
    engine_version: str = "14.5"
    instance_class: str = "db.t3.micro"
    allocated_storage: int = 10
    parameter_group_name: Optional[str] = "default.postgres14"
    username: str = "postgres"
    multi_az: bool = False
    deletion_protection: bool = False
    skip_final_snapshot: bool = True
    publicly_accessible: bool = False

    def validate(self):
        if self.allocated_storage <= 0:
            raise StackConfigError(f"allocated_storage must be positive, got {self.allocated_storage}")
        if not self.username:
            raise StackConfigError("Database username must not be empty")


@dataclass(frozen=True)
class StackSpec:
    roles: Tuple[RoleSpec, ...]
    network: NetworkSpec
    cluster: ClusterSpec
    node_pools: Tuple[NodePoolSpec, ...]
    access_rule: AccessRuleSpec
    database: DatabaseSpec

    def role(self, name: str) -> RoleSpec:
        for role in self.roles:
            if role.name == name:
                return role
        raise StackConfigError(f"Role {name!r} is not declared")

    def validate(self):
        """
        Check every record and the references between them

        Raises:
            StackConfigError: on the first violation found
        """
        check_unique(
            [role.name for role in self.roles] + [self.cluster.service_role_name],
            "role name")
        for role in self.roles:
            role.validate()
        check_unique(
            [a.name for role in self.roles for a in role.attachments],
            "policy attachment name")

        self.network.validate()
        self.cluster.validate()
        for name in self.cluster.trusted_role_names:
            self.role(name)

        if self.cluster.skip_default_node_group and not self.node_pools:
            raise StackConfigError(
                f"Cluster {self.cluster.name} skips its default node group but declares no node pools")
        check_unique([pool.name for pool in self.node_pools], "node pool name")
        for pool in self.node_pools:
            pool.validate()
            self.role(pool.node_role_name)
            if pool.node_role_name not in self.cluster.trusted_role_names:
                raise StackConfigError(
                    f"Node pool {pool.name} uses role {pool.node_role_name} "
                    f"which cluster {self.cluster.name} does not trust")

        self.access_rule.validate()
        self.database.validate()


def check_unique(names: List[str], kind: str):
    """Raise StackConfigError naming the first duplicate in names"""
    seen = set()
    for name in names:
        if name in seen:
            raise StackConfigError(f"Duplicate {kind}: {name!r}")
        seen.add(name)
