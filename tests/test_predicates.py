from __future__ import annotations

import pytest

from vmharness import predicates
from vmharness.predicates import (
    OPERATIONAL,
    OPERATIONAL_OR_EXPANDED,
    chaos_recovered,
    condition_true,
    deployment_available,
    job_succeeded,
    load_balancer_assigned,
)
from vmharness.types import (
    ChaosConditionList,
    Condition,
    CustomResourceStatus,
    DeploymentStatus,
    JobCompletion,
    LoadBalancerIngress,
    PredicateResult,
    ServiceIngress,
)

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


# ─── Operational ──────────────────────────────────────────────────


class TestOperational:
    def test_operational_is_satisfied(self):
        verdict = OPERATIONAL(CustomResourceStatus(update_status="Operational"))
        assert verdict.result is PredicateResult.SATISFIED
        assert verdict.satisfied
        assert verdict.detail == "updateStatus=Operational"

    @pytest.mark.parametrize("status", ["", "expanding", "failed", "Paused", "operational"])
    def test_anything_else_is_not_yet(self, status):
        verdict = OPERATIONAL(CustomResourceStatus(update_status=status))
        assert verdict.result is PredicateResult.NOT_YET

    def test_no_status_is_never_a_failure(self):
        verdict = OPERATIONAL(CustomResourceStatus(update_status="failed", reason="bad spec"))
        assert verdict.result is PredicateResult.NOT_YET
        assert "bad spec" in verdict.detail

    def test_empty_status_reported(self):
        verdict = OPERATIONAL(CustomResourceStatus(update_status=""))
        assert verdict.detail == "updateStatus=<empty>"

    def test_expand_success_only_for_cluster_predicate(self):
        state = CustomResourceStatus(update_status="ExpandSuccess")
        assert OPERATIONAL(state).result is PredicateResult.NOT_YET
        assert OPERATIONAL_OR_EXPANDED(state).result is PredicateResult.SATISFIED

    def test_custom_accepted_statuses(self):
        check = predicates.operational_status("Ready")
        assert check(CustomResourceStatus(update_status="Ready")).satisfied
        assert not check(CustomResourceStatus(update_status="Operational")).satisfied

    def test_wrong_variant_raises(self):
        with pytest.raises(TypeError, match="ServiceIngress"):
            OPERATIONAL(ServiceIngress())


# ─── Load balancer ────────────────────────────────────────────────


class TestLoadBalancerAssigned:
    def test_empty_ingress_not_yet(self):
        verdict = load_balancer_assigned(ServiceIngress(ingress=()))
        assert verdict.result is PredicateResult.NOT_YET
        assert verdict.detail == "no load balancer ingress"

    def test_ip_satisfies(self):
        verdict = load_balancer_assigned(ServiceIngress(ingress=(LoadBalancerIngress(ip="10.0.0.5"),)))
        assert verdict.satisfied
        assert verdict.detail == "ip=10.0.0.5"

    def test_hostname_without_ip_not_yet(self):
        state = ServiceIngress(ingress=(LoadBalancerIngress(hostname="lb.example.com"),))
        assert load_balancer_assigned(state).result is PredicateResult.NOT_YET

    def test_any_entry_with_ip(self):
        state = ServiceIngress(
            ingress=(LoadBalancerIngress(hostname="lb"), LoadBalancerIngress(ip="192.168.1.1"))
        )
        assert load_balancer_assigned(state).detail == "ip=192.168.1.1"

    def test_wrong_variant_raises(self):
        with pytest.raises(TypeError):
            load_balancer_assigned(JobCompletion())


# ─── Jobs ─────────────────────────────────────────────────────────


class TestJobSucceeded:
    def test_running(self):
        assert job_succeeded(JobCompletion()).result is PredicateResult.NOT_YET

    def test_succeeded(self):
        assert job_succeeded(JobCompletion(succeeded=True)).satisfied

    def test_failed_is_permanent(self):
        verdict = job_succeeded(JobCompletion(failed=True, message="BackoffLimitExceeded"))
        assert verdict.result is PredicateResult.PERMANENT_FAILURE
        assert "BackoffLimitExceeded" in verdict.detail

    def test_failed_wins_over_succeeded(self):
        verdict = job_succeeded(JobCompletion(succeeded=True, failed=True))
        assert verdict.result is PredicateResult.PERMANENT_FAILURE
        assert "no reason reported" in verdict.detail


# ─── Conditions ───────────────────────────────────────────────────


class TestConditionTrue:
    def test_empty_list_not_yet(self):
        verdict = chaos_recovered(ChaosConditionList(conditions=()))
        assert verdict.result is PredicateResult.NOT_YET
        assert "not reported" in verdict.detail

    def test_matching_true(self):
        state = ChaosConditionList(conditions=(Condition("AllRecovered", "True"),))
        assert chaos_recovered(state).satisfied

    def test_matching_false(self):
        state = ChaosConditionList(
            conditions=(Condition("AllInjected", "True"), Condition("AllRecovered", "False"))
        )
        verdict = chaos_recovered(state)
        assert verdict.result is PredicateResult.NOT_YET
        assert verdict.detail == "AllRecovered=False"

    def test_other_type_true_does_not_count(self):
        state = ChaosConditionList(conditions=(Condition("AllInjected", "True"),))
        assert not chaos_recovered(state).satisfied

    def test_works_on_deployment_conditions(self):
        state = DeploymentStatus(conditions=(Condition("Available", "True"),))
        assert condition_true("Available")(state).satisfied

    def test_wrong_variant_raises(self):
        with pytest.raises(TypeError):
            condition_true("Ready")(CustomResourceStatus(update_status="Operational"))


# ─── Deployments ──────────────────────────────────────────────────


class TestDeploymentAvailable:
    def test_available(self):
        state = DeploymentStatus(conditions=(Condition("Available", "True"),), replicas=2, available_replicas=2)
        verdict = deployment_available(state)
        assert verdict.satisfied
        assert verdict.detail == "available 2/2"

    def test_rolled_out(self):
        state = DeploymentStatus(
            conditions=(Condition("Progressing", "True", reason="NewReplicaSetAvailable"),),
            replicas=1,
            available_replicas=1,
        )
        assert deployment_available(state).satisfied

    def test_progress_deadline_is_not_a_failure(self):
        state = DeploymentStatus(
            conditions=(
                Condition("Available", "False"),
                Condition("Progressing", "False", reason="ProgressDeadlineExceeded"),
            ),
            replicas=1,
        )
        assert deployment_available(state).result is PredicateResult.NOT_YET

    def test_no_conditions(self):
        assert deployment_available(DeploymentStatus()).detail == "available 0/0"
