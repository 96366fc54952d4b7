"""
AWS IAM Connector for exitops.

Provides access to the credentials, policies, group memberships and tags
of a single IAM user, plus the user itself.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, OperationNotPageableError

from ..exceptions import ConnectorError
from .base_connector import CloudIAMConnector, ConnectorResult, MockBackend

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchEntity", "ResourceNotFoundException"})


def create_session(config: Dict[str, Any]) -> boto3.session.Session:
    """Build a boto3 session from an optional named profile and region."""
    return boto3.session.Session(
        profile_name=config.get("profile") or None,
        region_name=config.get("region") or None,
    )


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def safe_paginate(client, method_name: str, result_key: str, **kwargs) -> Iterator[dict]:
    """
    Iterate through every page of a boto3 list call.

    Raises:
        ConnectorError: If any page cannot be fetched
    """
    try:
        try:
            paginator = client.get_paginator(method_name)
        except OperationNotPageableError:
            response = getattr(client, method_name)(**kwargs)
            yield from response.get(result_key, [])
            return

        for page in paginator.paginate(**kwargs):
            yield from page.get(result_key, [])
    except ClientError as e:
        if error_code(e) in NOT_FOUND_CODES:
            return
        raise ConnectorError(f"{method_name} failed: {e}") from e
    except BotoCoreError as e:
        raise ConnectorError(f"{method_name} failed: {e}") from e


def call_result(description: str, call, **kwargs) -> ConnectorResult:
    """Issue one mutating boto3 call and map its outcome onto a ConnectorResult."""
    try:
        response = call(**kwargs)
    except ClientError as e:
        if error_code(e) in NOT_FOUND_CODES:
            return ConnectorResult.absent(f"{description}: not found")
        error_msg = f"{description} failed: {e}"
        logger.error(error_msg)
        return ConnectorResult(False, error_msg, error=error_code(e) or str(e))
    except BotoCoreError as e:
        error_msg = f"{description} failed: {e}"
        logger.error(error_msg)
        return ConnectorResult(False, error_msg, error=str(e))
    return ConnectorResult(True, description, data=response)


class AWSIAMConnector(CloudIAMConnector):
    """AWS IAM connector for stripping access from an IAM user."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        super().__init__(config, mock_mode)
        session = create_session(self.config)
        self.iam_client = session.client("iam")
        self.sts_client = session.client("sts")

    def check_credentials(self) -> Dict[str, Any]:
        """Resolve the calling identity through STS."""
        try:
            identity = self.sts_client.get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            raise ConnectorError(f"AWS credentials rejected: {e}") from e
        return {"account": identity["Account"], "arn": identity["Arn"]}

    def get_user(self, user: str) -> Optional[Dict[str, Any]]:
        try:
            return self.iam_client.get_user(UserName=user)["User"]
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return None
            raise ConnectorError(f"Failed to get IAM user {user}: {e}") from e
        except BotoCoreError as e:
            raise ConnectorError(f"Failed to get IAM user {user}: {e}") from e

    def list_access_keys(self, user: str) -> List[Dict[str, str]]:
        return [
            {"AccessKeyId": key["AccessKeyId"], "Status": key["Status"]}
            for key in safe_paginate(self.iam_client, "list_access_keys", "AccessKeyMetadata", UserName=user)
        ]

    def deactivate_access_key(self, user: str, key_id: str) -> ConnectorResult:
        return call_result(f"Deactivate access key {key_id}", self.iam_client.update_access_key,
                           UserName=user, AccessKeyId=key_id, Status="Inactive")

    def delete_access_key(self, user: str, key_id: str) -> ConnectorResult:
        return call_result(f"Delete access key {key_id}", self.iam_client.delete_access_key,
                           UserName=user, AccessKeyId=key_id)

    def list_signing_certs(self, user: str) -> List[str]:
        return [
            cert["CertificateId"]
            for cert in safe_paginate(self.iam_client, "list_signing_certificates", "Certificates", UserName=user)
        ]

    def delete_signing_cert(self, user: str, cert_id: str) -> ConnectorResult:
        return call_result(f"Delete signing certificate {cert_id}", self.iam_client.delete_signing_certificate,
                           UserName=user, CertificateId=cert_id)

    def get_login_profile(self, user: str) -> bool:
        try:
            self.iam_client.get_login_profile(UserName=user)
            return True
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return False
            raise ConnectorError(f"Failed to get login profile of {user}: {e}") from e
        except BotoCoreError as e:
            raise ConnectorError(f"Failed to get login profile of {user}: {e}") from e

    def delete_login_profile(self, user: str) -> ConnectorResult:
        return call_result("Delete console login profile", self.iam_client.delete_login_profile,
                           UserName=user)

    def list_attached_policies(self, user: str) -> List[str]:
        return [
            policy["PolicyArn"]
            for policy in safe_paginate(self.iam_client, "list_attached_user_policies", "AttachedPolicies",
                                        UserName=user)
        ]

    def detach_policy(self, user: str, policy_arn: str) -> ConnectorResult:
        return call_result(f"Detach managed policy {policy_arn}", self.iam_client.detach_user_policy,
                           UserName=user, PolicyArn=policy_arn)

    def list_inline_policies(self, user: str) -> List[str]:
        return list(safe_paginate(self.iam_client, "list_user_policies", "PolicyNames", UserName=user))

    def delete_inline_policy(self, user: str, policy_name: str) -> ConnectorResult:
        return call_result(f"Delete inline policy {policy_name}", self.iam_client.delete_user_policy,
                           UserName=user, PolicyName=policy_name)

    def list_groups_for_user(self, user: str) -> List[str]:
        return [
            group["GroupName"]
            for group in safe_paginate(self.iam_client, "list_groups_for_user", "Groups", UserName=user)
        ]

    def remove_user_from_group(self, user: str, group: str) -> ConnectorResult:
        return call_result(f"Remove from group {group}", self.iam_client.remove_user_from_group,
                           UserName=user, GroupName=group)

    def list_user_tags(self, user: str) -> List[str]:
        return [tag["Key"] for tag in safe_paginate(self.iam_client, "list_user_tags", "Tags", UserName=user)]

    def untag_user(self, user: str, tag_keys: List[str]) -> ConnectorResult:
        if not tag_keys:
            return ConnectorResult(True, "No tags to remove")
        return call_result(f"Remove {len(tag_keys)} tag(s)", self.iam_client.untag_user,
                           UserName=user, TagKeys=tag_keys)

    def delete_user(self, user: str) -> ConnectorResult:
        result = call_result(f"Delete IAM user {user}", self.iam_client.delete_user, UserName=user)
        if result.success:
            logger.info(f"Deleted AWS IAM user: {user}")
        return result


class AWSIAMMockConnector(MockBackend, CloudIAMConnector):
    """Mock implementation of the AWS IAM connector for testing."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config, mock_mode=True)
        self._init_mock_state()
        self.account_id = self.config.get("account_id", "123456789012")
        self.users: Dict[str, Dict[str, Any]] = {}

    def add_user(self, user: str, access_keys: Optional[Dict[str, str]] = None,
                 signing_certs: Optional[List[str]] = None, login_profile: bool = False,
                 attached_policies: Optional[List[str]] = None, inline_policies: Optional[List[str]] = None,
                 groups: Optional[List[str]] = None, tags: Optional[List[str]] = None) -> Dict[str, Any]:
        """Seed a mock IAM user. ``access_keys`` maps key id to status."""
        self.users[user] = {
            "access_keys": dict(access_keys or {}),
            "signing_certs": set(signing_certs or []),
            "login_profile": login_profile,
            "attached_policies": set(attached_policies or []),
            "inline_policies": set(inline_policies or []),
            "groups": set(groups or []),
            "tags": set(tags or []),
        }
        return self.users[user]

    def _state(self, user: str) -> Dict[str, Any]:
        return self.users.get(user, {
            "access_keys": {}, "signing_certs": set(), "login_profile": False,
            "attached_policies": set(), "inline_policies": set(), "groups": set(), "tags": set(),
        })

    def check_credentials(self) -> Dict[str, Any]:
        self._read("check_credentials")
        return {"account": self.account_id, "arn": f"arn:aws:iam::{self.account_id}:user/mock-admin"}

    def get_user(self, user: str) -> Optional[Dict[str, Any]]:
        self._read("get_user", user)
        if user not in self.users:
            return None
        return {"UserName": user, "Arn": f"arn:aws:iam::{self.account_id}:user/{user}"}

    def list_access_keys(self, user: str) -> List[Dict[str, str]]:
        self._read("list_access_keys", user)
        return [{"AccessKeyId": k, "Status": s} for k, s in sorted(self._state(user)["access_keys"].items())]

    def deactivate_access_key(self, user: str, key_id: str) -> ConnectorResult:
        keys = self._state(user)["access_keys"]
        return self._mutate("deactivate_access_key", key_id, key_id in keys,
                            lambda: keys.__setitem__(key_id, "Inactive"))

    def delete_access_key(self, user: str, key_id: str) -> ConnectorResult:
        keys = self._state(user)["access_keys"]
        return self._mutate("delete_access_key", key_id, key_id in keys, lambda: keys.pop(key_id))

    def list_signing_certs(self, user: str) -> List[str]:
        self._read("list_signing_certs", user)
        return sorted(self._state(user)["signing_certs"])

    def delete_signing_cert(self, user: str, cert_id: str) -> ConnectorResult:
        certs = self._state(user)["signing_certs"]
        return self._mutate("delete_signing_cert", cert_id, cert_id in certs, lambda: certs.discard(cert_id))

    def get_login_profile(self, user: str) -> bool:
        self._read("get_login_profile", user)
        return self._state(user)["login_profile"]

    def delete_login_profile(self, user: str) -> ConnectorResult:
        state = self._state(user)
        return self._mutate("delete_login_profile", user, state["login_profile"],
                            lambda: state.__setitem__("login_profile", False))

    def list_attached_policies(self, user: str) -> List[str]:
        self._read("list_attached_policies", user)
        return sorted(self._state(user)["attached_policies"])

    def detach_policy(self, user: str, policy_arn: str) -> ConnectorResult:
        policies = self._state(user)["attached_policies"]
        return self._mutate("detach_policy", policy_arn, policy_arn in policies,
                            lambda: policies.discard(policy_arn))

    def list_inline_policies(self, user: str) -> List[str]:
        self._read("list_inline_policies", user)
        return sorted(self._state(user)["inline_policies"])

    def delete_inline_policy(self, user: str, policy_name: str) -> ConnectorResult:
        policies = self._state(user)["inline_policies"]
        return self._mutate("delete_inline_policy", policy_name, policy_name in policies,
                            lambda: policies.discard(policy_name))

    def list_groups_for_user(self, user: str) -> List[str]:
        self._read("list_groups_for_user", user)
        return sorted(self._state(user)["groups"])

    def remove_user_from_group(self, user: str, group: str) -> ConnectorResult:
        groups = self._state(user)["groups"]
        return self._mutate("remove_user_from_group", group, group in groups, lambda: groups.discard(group))

    def list_user_tags(self, user: str) -> List[str]:
        self._read("list_user_tags", user)
        return sorted(self._state(user)["tags"])

    def untag_user(self, user: str, tag_keys: List[str]) -> ConnectorResult:
        tags = self._state(user)["tags"]
        return self._mutate("untag_user", user, user in self.users,
                            lambda: tags.difference_update(tag_keys))

    def delete_user(self, user: str) -> ConnectorResult:
        return self._mutate("delete_user", user, user in self.users, lambda: self.users.pop(user))
