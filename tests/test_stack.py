"""
Unit tests for configuration and stack assembly
"""

import os
import sys
import unittest
from contextlib import ExitStack
from unittest.mock import Mock, patch

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from infra.config import Config
from infra.specs import StackConfigError
from infra.stack import deploy


def empty_pulumi_config(values=None):
    """Pulumi config mock returning None for every key not in values"""
    values = values or {}
    config = Mock()
    config.get.side_effect = lambda key: values.get(key)
    config.get_int.side_effect = lambda key: values.get(key)
    config.get_bool.side_effect = lambda key: values.get(key)
    config.get_object.side_effect = lambda key: values.get(key)
    config.require_secret.return_value = Mock(name="secret")
    return config


def make_config(values=None):
    with patch('infra.config.pulumi') as mock_pulumi:
        mock_pulumi.Config.return_value = empty_pulumi_config(values)
        mock_pulumi.get_project.return_value = "eks-platform"
        mock_pulumi.get_stack.return_value = "dev"
        config = Config()
        tags = config.common_tags
    return config, tags


class TestConfig(unittest.TestCase):

    def test_defaults(self):
        config, tags = make_config()

        self.assertEqual(config.vpc_cidr, "172.16.0.0/16")
        self.assertEqual(config.zone_count, 3)
        self.assertEqual(config.subnet_cidr_mask, 20)
        self.assertEqual(config.cluster_name, "cluster-test")
        self.assertTrue(config.skip_default_node_group)
        self.assertEqual(config.node_instance_types, ["t2.micro"])
        self.assertEqual(config.role_names, ["FixedManagedNodeRole", "SpotManagedNodeRole"])
        self.assertEqual(config.db_allow_from, "vpc")
        self.assertEqual(tags["ManagedBy"], "pulumi")
        self.assertEqual(tags["Stack"], "dev")

    def test_zero_sizes_are_kept(self):
        config, _ = make_config({"node_min_size": 0, "node_desired_size": 0})

        self.assertEqual(config.node_min_size, 0)
        self.assertEqual(config.node_desired_size, 0)

    def test_stack_spec_from_defaults(self):
        config, _ = make_config()
        spec = config.stack_spec()

        self.assertEqual([r.name for r in spec.roles], ["FixedManagedNodeRole", "SpotManagedNodeRole"])
        self.assertEqual(len(spec.network.subnet_plan()), 6)
        self.assertEqual(spec.cluster.trusted_role_names, ("FixedManagedNodeRole", "SpotManagedNodeRole"))

        fixed, spot = spec.node_pools
        self.assertEqual((fixed.name, fixed.capacity_type, fixed.taints), ("fixedNodeGroup", "ON_DEMAND", ()))
        self.assertEqual((spot.name, spot.capacity_type), ("spotNodeGroup", "SPOT"))
        self.assertEqual([(t.key, t.value, t.effect) for t in spot.taints], [("spot", "true", "NO_SCHEDULE")])
        for pool in spec.node_pools:
            scaling = pool.scaling
            self.assertEqual((scaling.min_size, scaling.desired_size, scaling.max_size), (1, 1, 2))

        self.assertEqual(spec.access_rule.ingress[0].port, 5432)
        self.assertEqual(spec.access_rule.ingress[0].cidr_blocks, ("172.16.0.0/16",))
        self.assertEqual(spec.access_rule.egress, ())

    def test_policy_override(self):
        config, _ = make_config()
        spec = config.stack_spec(["PolicyA"])

        self.assertEqual([a.name for a in spec.roles[0].attachments], ["FixedManagedNodeRole-policy-0"])

    def test_invalid_configuration_rejected(self):
        cases = [
            {"fixed_role_name": "Same", "spot_role_name": "Same"},
            {"node_min_size": 3},
            {"subnet_cidr_mask": 18},
            {"fixed_role_name": "cluster-test-cluster-role"},
        ]
        for values in cases:
            with self.subTest(values=values):
                config, _ = make_config(values)
                with self.assertRaises(StackConfigError):
                    config.stack_spec()

    def test_unknown_db_allow_from(self):
        with self.assertRaises(StackConfigError):
            make_config({"db_allow_from": "anywhere"})


class TestDeploy(unittest.TestCase):

    def deploy(self, values=None):
        config, _ = make_config(values)
        with ExitStack() as stack:
            mocks = {}
            for module in ("iam", "vpc", "eks", "database"):
                mocks[module] = stack.enter_context(patch(f'infra.{module}.functions.aws'))
                mocks[f"{module}_pulumi"] = stack.enter_context(patch(f'infra.{module}.functions.pulumi'))
            mocks["outputs_pulumi"] = stack.enter_context(patch('infra.outputs.functions.pulumi'))
            stack.enter_context(patch('infra.config.pulumi'))
            mocks["iam"].iam.Role.side_effect = lambda name, **kwargs: Mock(arn=f"arn:{name}")
            mocks["iam"].iam.RolePolicyAttachment.side_effect = lambda name, **kwargs: Mock(name=name)
            mocks["vpc"].get_availability_zones.return_value = Mock(names=["a", "b", "c"])
            mocks["vpc"].ec2.Subnet.side_effect = lambda name, **kwargs: Mock(id=f"{name}-id")
            result = deploy(config)
        return result, mocks

    def test_declares_full_graph(self):
        result, mocks = self.deploy()

        self.assertEqual(mocks["iam"].iam.Role.call_count, 3)
        self.assertEqual(mocks["iam"].iam.RolePolicyAttachment.call_count, 7)
        mocks["eks"].eks.Cluster.assert_called_once()
        self.assertEqual(mocks["eks"].eks.AccessEntry.call_count, 2)
        self.assertEqual([c.args[0] for c in mocks["eks"].eks.NodeGroup.call_args_list],
                         ["fixedNodeGroup", "spotNodeGroup"])
        mocks["database"].rds.Instance.assert_called_once()

        private_ids = ["vpc-test-private-1-id", "vpc-test-private-2-id", "vpc-test-private-3-id"]
        self.assertEqual(mocks["eks"].eks.ClusterVpcConfigArgs.call_args.kwargs["subnet_ids"], private_ids)
        self.assertEqual(mocks["database"].rds.SubnetGroup.call_args.kwargs["subnet_ids"], private_ids)
        for call in mocks["eks"].eks.NodeGroup.call_args_list:
            self.assertEqual(call.kwargs["subnet_ids"], private_ids)

        exported = [c.args[0] for c in mocks["outputs_pulumi"].export.call_args_list]
        self.assertIn("kubeconfig", exported)
        self.assertEqual(list(result["node_groups"]), ["fixedNodeGroup", "spotNodeGroup"])

    def test_node_groups_use_their_own_roles(self):
        result, mocks = self.deploy()

        roles = result["node_roles"]
        arns = {c.args[0]: c.kwargs["node_role_arn"] for c in mocks["eks"].eks.NodeGroup.call_args_list}
        self.assertEqual(arns["fixedNodeGroup"], "arn:FixedManagedNodeRole")
        self.assertEqual(arns["spotNodeGroup"], "arn:SpotManagedNodeRole")
        self.assertEqual(roles["SpotManagedNodeRole"]["role_arn"], "arn:SpotManagedNodeRole")

    def test_node_groups_wait_for_their_role_policies(self):
        result, mocks = self.deploy()

        options = mocks["eks_pulumi"].ResourceOptions.call_args_list
        node_group_calls = mocks["eks"].eks.NodeGroup.call_args_list
        self.assertEqual(len(node_group_calls), 2)
        # ResourceOptions for each node group is built right before its NodeGroup
        spot_depends_on = options[-1].kwargs["depends_on"]
        fixed_depends_on = options[-2].kwargs["depends_on"]
        for attachment in result["node_roles"]["SpotManagedNodeRole"]["policy_attachments"]:
            self.assertIn(attachment, spot_depends_on)
        for attachment in result["node_roles"]["FixedManagedNodeRole"]["policy_attachments"]:
            self.assertIn(attachment, fixed_depends_on)
        for entry in result["cluster"]["access_entries"]:
            self.assertIn(entry, spot_depends_on)

    def test_cluster_role_named_after_cluster(self):
        _, mocks = self.deploy()

        names = [c.args[0] for c in mocks["iam"].iam.Role.call_args_list]
        self.assertIn("cluster-test-cluster-role", names)

    def test_node_role_clashing_with_cluster_role_rejected(self):
        with self.assertRaisesRegex(StackConfigError, "Duplicate role name"):
            self.deploy({"spot_role_name": "cluster-test-cluster-role"})

    def test_cluster_scoped_database_ingress(self):
        result, mocks = self.deploy({"db_allow_from": "cluster"})

        kwargs = mocks["database"].ec2.SecurityGroupIngressArgs.call_args.kwargs
        self.assertEqual(kwargs["security_groups"], [result["cluster"]["cluster_security_group_id"]])


if __name__ == "__main__":
    unittest.main(verbosity=2)
