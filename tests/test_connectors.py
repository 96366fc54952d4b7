"""
Tests for the live provider connectors, with the SDK clients mocked out.
"""

from unittest.mock import MagicMock

import pytest
import requests
from botocore.exceptions import ClientError, EndpointConnectionError, OperationNotPageableError
from github import GithubException, UnknownObjectException

from exitops.connectors import AWSIAMConnector, AWSSSOConnector, GitHubConnector
from exitops.connectors.aws_connector import call_result, safe_paginate
from exitops.engine.preflight import PreflightChecker
from exitops.exceptions import ConnectorError, PreflightError
from exitops.models import ModuleStatus, Outcome, Principal, Provider
from exitops.workflows.aws_iam import aws_iam_module
from exitops.workflows.github import github_module


def client_error(code, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def response(status, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload if payload is not None else []
    return resp


class TestBoto3Helpers:
    """Test cases for safe_paginate and call_result."""

    def test_paginate_collects_every_page(self):
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Groups": [{"GroupName": "a"}]},
            {"Groups": [{"GroupName": "b"}, {"GroupName": "c"}]},
        ]

        groups = list(safe_paginate(client, "list_groups_for_user", "Groups", UserName="alice"))

        assert [g["GroupName"] for g in groups] == ["a", "b", "c"]
        client.get_paginator.return_value.paginate.assert_called_once_with(UserName="alice")

    def test_paginate_falls_back_to_plain_call(self):
        client = MagicMock()
        client.get_paginator.side_effect = OperationNotPageableError(operation_name="list_user_tags")
        client.list_user_tags.return_value = {"Tags": [{"Key": "team"}]}

        assert list(safe_paginate(client, "list_user_tags", "Tags", UserName="alice")) == [{"Key": "team"}]

    def test_paginate_not_found_is_empty(self):
        client = MagicMock()
        client.get_paginator.return_value.paginate.side_effect = client_error("NoSuchEntity")

        assert list(safe_paginate(client, "list_access_keys", "AccessKeyMetadata")) == []

    def test_paginate_error_raises(self):
        client = MagicMock()
        client.get_paginator.return_value.paginate.side_effect = client_error("AccessDenied")

        with pytest.raises(ConnectorError, match="list_access_keys failed"):
            list(safe_paginate(client, "list_access_keys", "AccessKeyMetadata"))

    def test_paginate_connection_error_raises(self):
        client = MagicMock()
        client.get_paginator.return_value.paginate.side_effect = EndpointConnectionError(endpoint_url="x")

        with pytest.raises(ConnectorError):
            list(safe_paginate(client, "list_access_keys", "AccessKeyMetadata"))

    def test_call_result_success(self):
        call = MagicMock(return_value={"ResponseMetadata": {}})

        result = call_result("Delete access key AKIA1", call, UserName="alice", AccessKeyId="AKIA1")

        assert result.success
        call.assert_called_once_with(UserName="alice", AccessKeyId="AKIA1")

    def test_call_result_not_found(self):
        result = call_result("Delete access key AKIA1", MagicMock(side_effect=client_error("NoSuchEntity")))

        assert result.not_found
        assert not result.success

    def test_call_result_failure(self):
        result = call_result("Delete access key AKIA1", MagicMock(side_effect=client_error("AccessDenied")))

        assert not result.success
        assert not result.not_found
        assert result.error == "AccessDenied"


class TestAWSIAMConnector:
    """Test cases for AWSIAMConnector."""

    @pytest.fixture
    def connector(self, mocker):
        mocker.patch("exitops.connectors.aws_connector.create_session")
        connector = AWSIAMConnector({"region": "us-east-1"})
        connector.iam_client = MagicMock()
        connector.sts_client = MagicMock()
        return connector

    def test_check_credentials(self, connector):
        connector.sts_client.get_caller_identity.return_value = {
            "Account": "111122223333", "Arn": "arn:aws:iam::111122223333:user/admin",
        }

        assert connector.check_credentials()["account"] == "111122223333"

    def test_check_credentials_rejected(self, connector):
        connector.sts_client.get_caller_identity.side_effect = client_error("InvalidClientTokenId")

        with pytest.raises(ConnectorError):
            connector.check_credentials()

    def test_missing_user(self, connector):
        connector.iam_client.get_user.side_effect = client_error("NoSuchEntity")

        assert connector.get_user("ghost") is None

    def test_login_profile_absent(self, connector):
        connector.iam_client.get_login_profile.side_effect = client_error("NoSuchEntity")

        assert connector.get_login_profile("alice") is False

    def test_get_user_unreachable(self, connector):
        connector.iam_client.get_user.side_effect = EndpointConnectionError(endpoint_url="https://iam.amazonaws.com")

        with pytest.raises(ConnectorError, match="Failed to get IAM user alice"):
            connector.get_user("alice")

    def test_login_profile_unreachable(self, connector):
        connector.iam_client.get_login_profile.side_effect = EndpointConnectionError(endpoint_url="x")

        with pytest.raises(ConnectorError):
            connector.get_login_profile("alice")

    def test_unreachable_endpoint_aborts_module(self, connector, execute_ctx):
        connector.iam_client.get_user.side_effect = EndpointConnectionError(endpoint_url="x")

        result = aws_iam_module(connector).run(Principal(iam_username="alice"), execute_ctx)

        assert result.status == ModuleStatus.ABORTED
        assert [(r.module, r.outcome) for r in execute_ctx.audit.records] == [("AWS_IAM", Outcome.FAILURE)]

    def test_deactivate_sets_inactive(self, connector):
        connector.deactivate_access_key("alice", "AKIA1")

        connector.iam_client.update_access_key.assert_called_once_with(
            UserName="alice", AccessKeyId="AKIA1", Status="Inactive"
        )

    def test_untag_without_tags_makes_no_call(self, connector):
        assert connector.untag_user("alice", []).success
        connector.iam_client.untag_user.assert_not_called()


class TestAWSSSOConnector:
    """Test cases for AWSSSOConnector."""

    @pytest.fixture
    def connector(self, mocker):
        mocker.patch("exitops.connectors.sso_connector.create_session")
        mocker.patch("exitops.connectors.sso_connector.time.sleep")
        connector = AWSSSOConnector({
            "identity_store_id": "d-1234567890",
            "instance_arn": "arn:aws:sso:::instance/ssoins-1",
            "poll_attempts": 3,
        })
        connector.sso_admin_client = MagicMock()
        connector.identitystore_client = MagicMock()
        return connector

    def test_identity_store_required(self, mocker):
        mocker.patch("exitops.connectors.sso_connector.create_session")

        with pytest.raises(ValueError):
            AWSSSOConnector({})

    def test_assignments_filtered_to_user(self, connector):
        connector.sso_admin_client.get_paginator.return_value.paginate.return_value = [{
            "AccountAssignments": [
                {"PrincipalId": "u-alice", "PrincipalType": "USER"},
                {"PrincipalId": "u-bob", "PrincipalType": "USER"},
                {"PrincipalId": "u-alice", "PrincipalType": "GROUP"},
            ]
        }]

        assignments = connector.list_account_assignments("arn:i", "111122223333", "arn:ps", "u-alice")

        assert assignments == [{"PrincipalId": "u-alice", "PrincipalType": "USER"}]

    def test_deletion_polled_until_succeeded(self, connector):
        client = connector.sso_admin_client
        client.delete_account_assignment.return_value = {
            "AccountAssignmentDeletionStatus": {"Status": "IN_PROGRESS", "RequestId": "req-1"}
        }
        client.describe_account_assignment_deletion_status.return_value = {
            "AccountAssignmentDeletionStatus": {"Status": "SUCCEEDED", "RequestId": "req-1"}
        }

        result = connector.delete_account_assignment("arn:i", "111122223333", "arn:ps", "u-alice")

        assert result.success
        client.describe_account_assignment_deletion_status.assert_called_once_with(
            InstanceArn="arn:i", AccountAssignmentDeletionRequestId="req-1"
        )

    def test_failed_deletion_is_failure(self, connector):
        connector.sso_admin_client.delete_account_assignment.return_value = {
            "AccountAssignmentDeletionStatus": {"Status": "FAILED", "FailureReason": "conflict"}
        }

        result = connector.delete_account_assignment("arn:i", "111122223333", "arn:ps", "u-alice")

        assert not result.success
        assert result.error == "conflict"

    def test_deletion_timeout_is_failure(self, connector):
        client = connector.sso_admin_client
        in_progress = {"AccountAssignmentDeletionStatus": {"Status": "IN_PROGRESS", "RequestId": "req-1"}}
        client.delete_account_assignment.return_value = in_progress
        client.describe_account_assignment_deletion_status.return_value = in_progress

        result = connector.delete_account_assignment("arn:i", "111122223333", "arn:ps", "u-alice")

        assert not result.success
        assert result.error == "timeout"

    def test_resolve_by_email(self, connector):
        connector.identitystore_client.get_paginator.return_value.paginate.return_value = [
            {"Users": [{"UserId": "u-alice", "UserName": "alice@acme.example"}]}
        ]

        assert connector.resolve_user_id_by_email("alice@acme.example") == "u-alice"

    def test_identity_absent(self, connector):
        connector.identitystore_client.describe_user.side_effect = client_error("ResourceNotFoundException")

        assert connector.get_identity("u-gone") is False

    def test_identity_unreachable(self, connector):
        connector.identitystore_client.describe_user.side_effect = EndpointConnectionError(endpoint_url="x")

        with pytest.raises(ConnectorError, match="Failed to describe SSO user u-alice"):
            connector.get_identity("u-alice")


class TestGitHubConnector:
    """Test cases for GitHubConnector."""

    @pytest.fixture
    def connector(self, mocker):
        mocker.patch("exitops.connectors.github_connector.Github")
        connector = GitHubConnector({"token": "ghp_test", "organization": "acme"})
        connector.session = MagicMock()
        return connector

    def test_token_required(self):
        with pytest.raises(ValueError):
            GitHubConnector({"organization": "acme"})

    def test_org_required(self, mocker):
        mocker.patch("exitops.connectors.github_connector.Github")

        with pytest.raises(ValueError):
            GitHubConnector({"token": "ghp_test"})

    def test_remove_team_member_absent(self, connector):
        team = connector.github.get_organization.return_value.get_team_by_slug.return_value
        team.remove_membership.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)

        result = connector.remove_team_member("backend", "alice")

        assert result.not_found

    def test_remove_team_member_error(self, connector):
        team = connector.github.get_organization.return_value.get_team_by_slug.return_value
        team.remove_membership.side_effect = GithubException(500, {"message": "boom"}, None)

        result = connector.remove_team_member("backend", "alice")

        assert not result.success
        assert result.error == "HTTP 500"

    def test_list_teams_error_raises(self, connector):
        connector.github.get_organization.return_value.get_teams.return_value.get_page.side_effect = (
            GithubException(502, {"message": "bad gateway"}, None)
        )

        with pytest.raises(ConnectorError):
            connector.list_teams_page(0, 100)

    def test_list_teams_unreachable(self, connector):
        teams = connector.github.get_organization.return_value.get_teams.return_value
        teams.get_page.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(ConnectorError, match="Failed to list teams of acme"):
            connector.list_teams_page(0, 100)

    def test_team_membership_timeout(self, connector):
        team = connector.github.get_organization.return_value.get_team_by_slug.return_value
        team.has_in_members.side_effect = requests.Timeout("read timed out")

        with pytest.raises(ConnectorError):
            connector.get_team_membership("backend", "alice")

    def test_repo_collaborator_unreachable(self, connector):
        connector.github.get_repo.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(ConnectorError):
            connector.get_repo_collaborator("api", "alice")

    def test_remove_team_member_unreachable(self, connector):
        team = connector.github.get_organization.return_value.get_team_by_slug.return_value
        team.remove_membership.side_effect = requests.ConnectionError("connection refused")

        result = connector.remove_team_member("backend", "alice")

        assert not result.success
        assert result.error == "ConnectionError"

    def test_remove_org_member_lookup_failure(self, connector):
        connector.github.get_user.side_effect = GithubException(502, {"message": "bad gateway"}, None)

        result = connector.remove_org_member("alice")

        assert not result.success
        assert result.error == "HTTP 502"

    def test_unreachable_api_aborts_module(self, connector, execute_ctx):
        teams = connector.github.get_organization.return_value.get_teams.return_value
        teams.get_page.side_effect = requests.ConnectionError("connection refused")

        result = github_module(connector).run(Principal(github_username="alice"), execute_ctx)

        assert result.status == ModuleStatus.ABORTED
        assert [(r.module, r.outcome) for r in execute_ctx.audit.records] == [("GITHUB", Outcome.FAILURE)]

    def test_unreachable_api_fails_preflight(self, connector, full_config, connectors, alice, execute_ctx):
        connector.github.get_user.side_effect = requests.ConnectionError("connection refused")
        connectors[Provider.GITHUB] = connector

        with pytest.raises(PreflightError) as exc_info:
            PreflightChecker(full_config, connectors).check(alice, execute_ctx)

        assert exc_info.value.provider == Provider.GITHUB

    def test_membership_is_reread_on_every_check(self, connector):
        team = connector.github.get_organization.return_value.get_team_by_slug.return_value
        team.has_in_members.side_effect = [True, False]

        assert connector.get_team_membership("backend", "alice") is True
        assert connector.get_team_membership("backend", "alice") is False
        connector.github.get_user.assert_called_once_with("alice")

    def test_page_of_client_size_uses_get_page(self, connector):
        teams = connector.github.get_organization.return_value.get_teams.return_value
        teams.get_page.return_value = [MagicMock(slug="backend")]

        assert connector.list_teams_page(0, 100) == ["backend"]
        teams.get_page.assert_called_once_with(0)

    def test_page_of_other_size_is_sliced(self, connector):
        repos = connector.github.get_organization.return_value.get_repos.return_value
        repo = MagicMock()
        repo.name = "api"
        repos.__getitem__.return_value = [repo]

        assert connector.list_org_repos_page(1, 250) == ["api"]
        repos.__getitem__.assert_called_once_with(slice(250, 500))
        repos.get_page.assert_not_called()

    def test_repo_collaborator_check(self, connector):
        connector.github.get_repo.return_value.has_in_collaborators.return_value = True

        assert connector.get_repo_collaborator("api", "alice") is True
        connector.github.get_repo.assert_called_with("acme/api")

    def test_credential_authorizations_paged(self, connector):
        first = [{"login": "alice", "credential_id": i} for i in range(100)]
        connector.session.get.side_effect = [response(200, first), response(200, [{"login": "bob",
                                                                                   "credential_id": 7}])]

        credentials = connector.list_sso_credential_authorizations()

        assert len(credentials) == 101
        assert credentials[-1] == {"login": "bob", "credential_id": "7"}

    def test_credential_authorizations_without_saml(self, connector):
        connector.session.get.return_value = response(404)

        assert connector.list_sso_credential_authorizations() == []

    def test_credential_authorizations_error(self, connector):
        connector.session.get.return_value = response(403)

        with pytest.raises(ConnectorError) as exc_info:
            connector.list_sso_credential_authorizations()

        assert exc_info.value.status == 403

    @pytest.mark.parametrize("status,success,not_found", [(204, True, False), (404, False, True),
                                                          (500, False, False)])
    def test_revoke_credential(self, connector, status, success, not_found):
        connector.session.delete.return_value = response(status)

        result = connector.revoke_sso_credential("42")

        assert result.success is success
        assert result.not_found is not_found
