"""
AWS IAM offboarding for exitops.

Strips an IAM user of access keys, signing certificates, console access,
managed and inline policies and group memberships. Deleting the user itself
is an identity-level action that needs explicit opt-in.
"""

import logging
from typing import List

from ..connectors.base_connector import CloudIAMConnector, ConnectorResult
from ..engine.gate import ExecutionContext
from ..exceptions import ConnectorError
from ..models import Grant, GrantKind, GrantScope, Outcome, Principal, Provider
from .base_workflow import Action, GrantSource, ProviderModule, Revoker

logger = logging.getLogger(__name__)


class AWSIAMGrantSource(GrantSource):
    provider = Provider.AWS_IAM
    empty_category_messages = {
        GrantKind.ACCESS_KEY: "No access keys found",
        GrantKind.SIGNING_CERT: "No signing certificates found",
        GrantKind.LOGIN_PROFILE: "No login profile found",
        GrantKind.ATTACHED_POLICY: "No managed policies attached",
        GrantKind.INLINE_POLICY: "No inline policies found",
        GrantKind.GROUP_MEMBERSHIP: "User is not in any IAM groups",
    }

    def __init__(self, connector: CloudIAMConnector):
        self.connector = connector

    def scopes(self, principal: Principal, ctx: ExecutionContext) -> List[GrantScope]:
        user = principal.iam_username
        if not user:
            return []

        try:
            if self.connector.get_user(user) is None:
                ctx.record(self.provider.value, user, f"IAM user {user} not found - already removed", Outcome.INFO)
                return []

            def scope(kind: GrantKind, resource_id: str) -> GrantScope:
                return GrantScope(provider=self.provider, kind=kind, resource_id=resource_id)

            scopes = [scope(GrantKind.ACCESS_KEY, k["AccessKeyId"]) for k in self.connector.list_access_keys(user)]
            scopes += [scope(GrantKind.SIGNING_CERT, c) for c in self.connector.list_signing_certs(user)]
            scopes.append(scope(GrantKind.LOGIN_PROFILE, user))
            scopes += [scope(GrantKind.ATTACHED_POLICY, p) for p in self.connector.list_attached_policies(user)]
            scopes += [scope(GrantKind.INLINE_POLICY, p) for p in self.connector.list_inline_policies(user)]
            scopes += [scope(GrantKind.GROUP_MEMBERSHIP, g) for g in self.connector.list_groups_for_user(user)]
            scopes.append(scope(GrantKind.IAM_USER, user))
        except ConnectorError as e:
            raise self._enumeration_failed(f"IAM resources of {user}", e) from e

        return scopes

    def holds(self, principal: Principal, scope: GrantScope) -> bool:
        user = principal.iam_username
        kind = scope.kind
        if kind == GrantKind.ACCESS_KEY:
            # Inactive keys still count: they can be reactivated.
            return any(k["AccessKeyId"] == scope.resource_id for k in self.connector.list_access_keys(user))
        if kind == GrantKind.SIGNING_CERT:
            return scope.resource_id in self.connector.list_signing_certs(user)
        if kind == GrantKind.LOGIN_PROFILE:
            return self.connector.get_login_profile(user)
        if kind == GrantKind.ATTACHED_POLICY:
            return scope.resource_id in self.connector.list_attached_policies(user)
        if kind == GrantKind.INLINE_POLICY:
            return scope.resource_id in self.connector.list_inline_policies(user)
        if kind == GrantKind.GROUP_MEMBERSHIP:
            return scope.resource_id in self.connector.list_groups_for_user(user)
        if kind == GrantKind.IAM_USER:
            return self.connector.get_user(user) is not None
        raise ValueError(f"Unsupported IAM grant kind: {kind}")


class AWSIAMRevoker(Revoker):
    provider = Provider.AWS_IAM

    def __init__(self, connector: CloudIAMConnector):
        self.connector = connector

    def confirmation_message(self, grant: Grant) -> str:
        return f"Permanently delete IAM user '{grant.resource_id}'. This cannot be undone."

    def actions(self, grant: Grant) -> List[Action]:
        user = grant.principal_id
        resource = grant.resource_id
        kind = grant.kind
        c = self.connector

        if kind == GrantKind.ACCESS_KEY:
            return [
                (f"Deactivate access key: {resource}", lambda: c.deactivate_access_key(user, resource)),
                (f"Delete access key: {resource}", lambda: c.delete_access_key(user, resource)),
            ]
        if kind == GrantKind.SIGNING_CERT:
            return [(f"Delete signing certificate: {resource}", lambda: c.delete_signing_cert(user, resource))]
        if kind == GrantKind.LOGIN_PROFILE:
            return [("Delete console login profile", lambda: c.delete_login_profile(user))]
        if kind == GrantKind.ATTACHED_POLICY:
            return [(f"Detach managed policy: {resource}", lambda: c.detach_policy(user, resource))]
        if kind == GrantKind.INLINE_POLICY:
            return [(f"Delete inline policy: {resource}", lambda: c.delete_inline_policy(user, resource))]
        if kind == GrantKind.GROUP_MEMBERSHIP:
            return [(f"Remove from group: {resource}", lambda: c.remove_user_from_group(user, resource))]
        if kind == GrantKind.IAM_USER:
            return [
                ("Remove all tags", lambda: self._remove_tags(user)),
                (f"Delete IAM user: {user}", lambda: c.delete_user(user)),
            ]
        raise ValueError(f"Unsupported IAM grant kind: {kind}")

    def _remove_tags(self, user: str) -> ConnectorResult:
        tag_keys = self.connector.list_user_tags(user)
        if not tag_keys:
            return ConnectorResult(True, "No tags to remove")
        return self.connector.untag_user(user, tag_keys)


def aws_iam_module(connector: CloudIAMConnector) -> ProviderModule:
    return ProviderModule(AWSIAMGrantSource(connector), AWSIAMRevoker(connector))
