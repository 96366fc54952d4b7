"""
Tests for the leaver workflow orchestrator.
"""

import json

import pytest

from exitops.audit import AuditLogger
from exitops.engine.config_loader import AWSSettings, GitHubSettings, OffboardConfig
from exitops.models import ExitCode, ModuleStatus, Outcome, Provider
from exitops.workflows import LeaverWorkflow, create_run_summary


@pytest.fixture
def workflow(full_config, connectors, audit, refuse):
    return LeaverWorkflow(full_config, connectors=connectors, audit=audit, confirmer=refuse)


class TestLeaverWorkflow:
    """End-to-end runs against the mock providers."""

    def test_full_offboarding(self, workflow, github, iam, sso):
        outcome = workflow.execute()

        assert outcome.exit_code == ExitCode.SUCCESS
        assert outcome.verified
        assert outcome.verification.clean
        assert [m.status for m in outcome.modules] == [ModuleStatus.OK] * 3
        assert "alice" not in github.members
        assert iam.users["alice"]["access_keys"] == {}
        assert not [a for a in sso.assignments if a[2] == "u-alice"]

    def test_modules_run_in_fixed_order(self, workflow):
        outcome = workflow.execute()

        assert [m.provider for m in outcome.modules] == [Provider.GITHUB, Provider.AWS_IAM, Provider.AWS_SSO]

    def test_every_record_carries_run_id(self, workflow, audit):
        outcome = workflow.execute()

        assert {r.run_id for r in audit.records} == {outcome.run_id}

    def test_simulate_changes_nothing(self, workflow, connectors, audit):
        outcome = workflow.execute(simulate=True)

        assert outcome.exit_code == ExitCode.SUCCESS
        assert outcome.verification is None
        assert all(c.mutations == [] for c in connectors.values())
        assert {r.outcome for r in audit.records} == {Outcome.SIMULATED}
        assert all(r.simulate for r in audit.records)

    def test_simulate_then_execute_describe_same_actions(self, full_config, connectors, refuse):
        simulated_audit = AuditLogger()
        executed_audit = AuditLogger()

        LeaverWorkflow(full_config, connectors=connectors, audit=simulated_audit,
                       confirmer=refuse).execute(simulate=True)
        LeaverWorkflow(full_config, connectors=connectors, audit=executed_audit,
                       confirmer=refuse).execute()

        def actions(audit):
            return [(r.module, r.resource_id, r.message) for r in audit.records
                    if r.resource_id is not None and r.module != "VERIFY"]

        assert actions(simulated_audit) == actions(executed_audit)

    def test_hard_delete_with_approval(self, full_config, connectors, audit, approve, iam, sso):
        outcome = LeaverWorkflow(full_config, connectors=connectors, audit=audit,
                                 confirmer=approve).execute(allow_hard_delete=True)

        assert outcome.exit_code == ExitCode.SUCCESS
        assert "alice" not in iam.users
        assert "u-alice" not in sso.identities
        assert len(approve.prompts) == 2

    def test_disabled_providers_skipped(self, github_only_config, connectors, audit, refuse, iam, sso):
        outcome = LeaverWorkflow(github_only_config, connectors=connectors, audit=audit,
                                 confirmer=refuse).execute()

        assert [m.status for m in outcome.modules] == [
            ModuleStatus.OK, ModuleStatus.SKIPPED, ModuleStatus.SKIPPED,
        ]
        assert outcome.verification.checked == [Provider.GITHUB]
        assert iam.reads == [] and sso.reads == []

    def test_second_run_is_noop(self, workflow, connectors):
        workflow.execute()
        mutations = {p: list(c.mutations) for p, c in connectors.items()}

        outcome = workflow.execute()

        assert outcome.exit_code == ExitCode.SUCCESS
        assert {p: c.mutations for p, c in connectors.items()} == mutations


class TestExitCodes:
    """Failure classes map to distinct exit codes; the first one wins."""

    def test_invalid_config_exits_1(self, connectors, audit):
        config = OffboardConfig(github=GitHubSettings(org="acme", username="alice"), ledger_path=None)

        outcome = LeaverWorkflow(config, connectors=connectors, audit=audit).execute()

        assert outcome.exit_code == ExitCode.CONFIG_INVALID
        assert outcome.modules == []
        assert [(r.module, r.outcome) for r in audit.records] == [("CONFIG", Outcome.FAILURE)]
        assert "GITHUB_TOKEN is not set" in audit.records[0].message
        assert all(c.reads == [] for c in connectors.values())

    def test_invalid_config_in_simulate_is_still_failure(self, connectors, audit):
        config = OffboardConfig(github=GitHubSettings(token="t", org="acme"), ledger_path=None)

        outcome = LeaverWorkflow(config, connectors=connectors, audit=audit).execute(simulate=True)

        assert outcome.exit_code == ExitCode.CONFIG_INVALID
        assert audit.records[0].outcome == Outcome.FAILURE

    def test_unusable_credentials_exit_2(self, workflow, github, iam, audit):
        github.unreachable.add("check_credentials")

        outcome = workflow.execute()

        assert outcome.exit_code == ExitCode.PREFLIGHT_FAILED
        assert outcome.modules == []
        assert iam.mutations == [] and github.mutations == []
        failures = [r for r in audit.records if r.outcome == Outcome.FAILURE]
        assert [r.module for r in failures] == ["PREFLIGHT"]

    def test_wrong_aws_account_exit_2(self, full_config, connectors, audit, iam):
        config = full_config.model_copy(update={"aws": AWSSettings(expected_account_id="999999999999")})

        outcome = LeaverWorkflow(config, connectors=connectors, audit=audit).execute()

        assert outcome.exit_code == ExitCode.PREFLIGHT_FAILED
        assert "111122223333" in outcome.errors[0]
        assert iam.mutations == []

    def test_github_failure_exits_10(self, workflow, github):
        github.fail_on.add(("remove_team_member", "backend"))

        outcome = workflow.execute()

        assert outcome.modules[0].status == ModuleStatus.PARTIAL_FAILURE
        assert outcome.modules[1].status == ModuleStatus.OK
        assert outcome.exit_code == ExitCode.GITHUB_FAILED

    def test_first_failure_code_is_kept(self, workflow, github, sso):
        github.fail_on.add(("remove_team_member", "backend"))
        sso.unreachable.add("list_accounts")

        outcome = workflow.execute()

        assert outcome.modules[2].status == ModuleStatus.ABORTED
        assert not outcome.verification.clean
        assert outcome.exit_code == ExitCode.GITHUB_FAILED
        assert len(outcome.errors) == 3
        assert outcome.errors[-1].endswith("residual grant(s) detected")

    def test_sso_abort_exits_30(self, workflow, sso):
        sso.unreachable.add("list_group_memberships_for_member")

        outcome = workflow.execute()

        assert outcome.exit_code == ExitCode.AWS_SSO_FAILED

    def test_iam_failure_exits_20(self, workflow, iam):
        iam.fail_on.add(("remove_user_from_group", "developers"))

        outcome = workflow.execute()

        assert outcome.exit_code == ExitCode.AWS_IAM_FAILED
        assert outcome.modules[2].status == ModuleStatus.OK


class TestPreflight:

    def test_user_missing_from_org_continues(self, workflow, github, audit):
        github.members.discard("alice")

        outcome = workflow.execute()

        notices = [r.message for r in audit.records if r.module == "PREFLIGHT"]
        assert notices == ["GitHub user alice not found in org acme; continuing with collaborator cleanup"]
        assert ("remove_team_member", "backend") in github.mutations
        assert outcome.exit_code == ExitCode.SUCCESS

    def test_connectors_built_from_config(self, mocker, full_config, connectors, audit, refuse):
        build = mocker.patch("exitops.workflows.leaver.build_connectors", return_value=connectors)

        outcome = LeaverWorkflow(full_config, audit=audit, confirmer=refuse).execute()

        build.assert_called_once_with(full_config)
        assert outcome.exit_code == ExitCode.SUCCESS

    def test_connector_construction_failure_exits_2(self, mocker, full_config, audit):
        mocker.patch("exitops.workflows.leaver.build_connectors",
                     side_effect=ValueError("identity_store_id is required"))

        outcome = LeaverWorkflow(full_config, audit=audit).execute()

        assert outcome.exit_code == ExitCode.PREFLIGHT_FAILED
        assert "identity_store_id" in outcome.errors[0]


class TestRunSummary:

    def test_summary_fields(self, workflow, github):
        github.fail_on.add(("remove_repo_collaborator", "api"))

        summary = create_run_summary(workflow.execute())

        assert summary['principal'] == "alice / alice / alice@acme.example"
        assert summary['failed_modules'] == ["GITHUB"]
        assert summary['exit_code'] == 10
        github_summary = summary['modules'][0]
        assert github_summary['failed'] == 1
        assert github_summary['succeeded'] == 3
        assert summary['verification']['residual'] == [
            "RESIDUAL: GITHUB repo-collaborator 'api' still active"
        ]

    def test_ledger_written(self, tmp_path, full_config, connectors, refuse):
        ledger = tmp_path / "audit.json"
        config = full_config.model_copy(update={"ledger_path": str(ledger)})

        outcome = LeaverWorkflow(config, connectors=connectors, confirmer=refuse).execute()

        entries = json.loads(ledger.read_text())
        assert entries
        assert {e["run_id"] for e in entries} == {outcome.run_id}


class TestAliceAcme:
    """alice in acme with two team memberships and one repository grant."""

    REMOVALS = {"Removed from team: backend", "Removed from team: platform",
                "Removed collaborator access from repo: api"}

    def test_execute(self, github_only_config, connectors, audit, refuse, github):
        outcome = LeaverWorkflow(github_only_config, connectors=connectors, audit=audit,
                                 confirmer=refuse).execute()

        removals = [r for r in audit.records if r.message in self.REMOVALS]
        assert len(removals) == 3
        assert {r.outcome for r in removals} == {Outcome.SUCCESS}
        assert outcome.verification.clean
        assert outcome.exit_code == ExitCode.SUCCESS

    def test_simulate(self, github_only_config, connectors, audit, refuse, github):
        outcome = LeaverWorkflow(github_only_config, connectors=connectors, audit=audit,
                                 confirmer=refuse).execute(simulate=True)

        removals = [r for r in audit.records if r.message in self.REMOVALS]
        assert len(removals) == 3
        assert {r.outcome for r in removals} == {Outcome.SIMULATED}
        assert github.mutations == []
        assert not outcome.verified
        assert outcome.exit_code == ExitCode.SUCCESS
