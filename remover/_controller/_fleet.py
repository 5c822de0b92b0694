import typing

import boto3

from remover import _configs
from remover import _types


class AwsFleetController:
    """Fleet control plane access through EC2, Auto Scaling and ELBv2."""

    def __init__(
        self,
        session: boto3.Session,
        decrement_desired_capacity: bool = True,
        terminate_instance: bool = True,
    ):
        self.session = session
        self.decrement_desired_capacity = decrement_desired_capacity
        self.terminate_instance = terminate_instance

    def get_instance_id(self, node_name: str) -> str:
        """
        Find the EC2 instance backing the node with the given private DNS name.

        Terminated instances keep their DNS names around for a while after
        they are gone, so only live instance states are considered.

        :param node_name:
            Private DNS name of the node, which is how cluster nodes are named.
        :return:
            Identifier of the matching EC2 instance.
        """
        client = self.session.client("ec2")
        response = client.describe_instances(
            Filters=[
                {"Name": "private-dns-name", "Values": [node_name]},
                {
                    "Name": "instance-state-name",
                    "Values": list(_configs.LIVE_INSTANCE_STATES),
                },
            ]
        )
        instance_ids = [
            instance["InstanceId"]
            for reserve in (response.get("Reservations") or [])
            for instance in (reserve.get("Instances") or [])
        ]
        if not instance_ids:
            raise _types.ResolutionError(f"No instance found for node '{node_name}'.")
        return instance_ids[0]

    def get_target_group_arn(self, group: str) -> str:
        """
        Find the target group attached to the named auto scaling group.

        When more than one target group is attached, the first one reported
        by the API is used.
        """
        client = self.session.client("autoscaling")
        response = client.describe_load_balancer_target_groups(
            AutoScalingGroupName=group
        )
        arns = [
            tg["LoadBalancerTargetGroupARN"]
            for tg in (response.get("LoadBalancerTargetGroups") or [])
            if tg.get("LoadBalancerTargetGroupARN")
        ]
        if not arns:
            raise _types.ResolutionError(
                f"No target group attached to auto scaling group '{group}'."
            )
        return arns[0]

    def deregister_instance(self, target_group_arn: str, instance_id: str):
        """Start deregistering the instance, which begins connection draining."""
        client = self.session.client("elbv2")
        client.deregister_targets(
            TargetGroupArn=target_group_arn,
            Targets=[{"Id": instance_id}],
        )

    def list_target_instances(self, target_group_arn: str) -> typing.List[str]:
        """
        List instance IDs currently registered with the target group.

        Targets still draining are reported by the API and so are included
        here until deregistration has fully completed.
        """
        client = self.session.client("elbv2")
        response = client.describe_target_health(TargetGroupArn=target_group_arn)
        return [
            description["Target"]["Id"]
            for description in (response.get("TargetHealthDescriptions") or [])
        ]

    def detach_instance(self, group: str, instance_id: str):
        """
        Remove the instance from the auto scaling group.

        By default the instance is terminated through the group, which stops
        the node's process for good. When termination is turned off the
        instance is only detached and keeps running outside of the group.
        Whether the group launches a replacement depends on the decrement
        desired capacity setting either way.
        """
        client = self.session.client("autoscaling")
        if self.terminate_instance:
            client.terminate_instance_in_auto_scaling_group(
                InstanceId=instance_id,
                ShouldDecrementDesiredCapacity=self.decrement_desired_capacity,
            )
            return

        client.detach_instances(
            InstanceIds=[instance_id],
            AutoScalingGroupName=group,
            ShouldDecrementDesiredCapacity=self.decrement_desired_capacity,
        )
