"""Tests for the analyze/apply convergence loop."""

import pytest

from conftest import AlwaysAddAnalyzer, FailingAnalyzer, FakeDeclaration, RemovePackageAnalyzer
from upgrader.cancellation import CancellationToken, OperationCancelled
from upgrader.convergence import AnalyzerError, ConvergenceOutcome, ConvergenceRunner
from upgrader.models import PackageReference, RiskLevel


class TestConvergenceRunner:
    def test_no_recommendations_converges_immediately(self, project, token):
        decl = FakeDeclaration([PackageReference("requests")])
        runner = ConvergenceRunner(decl, [RemovePackageAnalyzer("nose")], max_iterations=3)
        result = runner.run(project, token)
        assert result.outcome == ConvergenceOutcome.CONVERGED
        assert result.converged is True
        assert result.iterations == 0
        assert result.analysis_passes == 1
        assert decl.applies == 0

    def test_converges_after_one_apply(self, project, token):
        decl = FakeDeclaration([PackageReference("requests"), PackageReference("nose")])
        analyzer = RemovePackageAnalyzer("nose", RiskLevel.HIGH)
        result = ConvergenceRunner(decl, [analyzer], max_iterations=3).run(project, token)
        assert result.outcome == ConvergenceOutcome.CONVERGED
        assert result.iterations == 1
        assert result.analysis_passes == 2
        assert result.risk == RiskLevel.HIGH
        assert result.applied == ["Remove package nose"]
        assert decl.snapshot.packages == [PackageReference("requests")]

    def test_cap_reached_when_never_converging(self, project, token):
        """A cap of 3 allows 3 applies and a 4th analysis that still finds changes."""
        decl = FakeDeclaration()
        analyzer = AlwaysAddAnalyzer()
        result = ConvergenceRunner(decl, [analyzer], max_iterations=3).run(project, token)
        assert result.outcome == ConvergenceOutcome.CAP_REACHED
        assert analyzer.calls == 4
        assert result.analysis_passes == 4
        assert result.iterations == 3
        assert decl.applies == 3

    def test_zero_cap_analyzes_once(self, project, token):
        decl = FakeDeclaration()
        result = ConvergenceRunner(decl, [AlwaysAddAnalyzer()], max_iterations=0).run(project, token)
        assert result.outcome == ConvergenceOutcome.CAP_REACHED
        assert result.analysis_passes == 1
        assert decl.applies == 0

    def test_negative_cap_rejected(self):
        with pytest.raises(ValueError):
            ConvergenceRunner(FakeDeclaration(), [], max_iterations=-1)

    def test_analyzer_failure_stops_run(self, project, token):
        decl = FakeDeclaration([PackageReference("nose")])
        later = RemovePackageAnalyzer("nose")
        result = ConvergenceRunner(decl, [FailingAnalyzer(), later]).run(project, token)
        assert result.outcome == ConvergenceOutcome.ANALYZER_FAILED
        assert result.failed_analyzer == "failing"
        assert "index exploded" in result.error
        assert later.calls == 0
        assert decl.applies == 0

    def test_analyzers_run_in_declared_order(self, project, token):
        seen = []

        class Named:
            def __init__(self, name):
                self.name = name

            def analyze(self, project, state, token):
                seen.append(self.name)

        runner = ConvergenceRunner(FakeDeclaration(), [Named("one"), Named("two"), Named("three")])
        runner.run(project, token)
        assert seen == ["one", "two", "three"]

    def test_later_analyzer_sees_earlier_changes(self, project, token):
        decl = FakeDeclaration([PackageReference("nose")])
        observed = []

        class Observer:
            name = "observer"

            def analyze(self, project, state, token):
                observed.append(list(state.packages.deletions))

        ConvergenceRunner(decl, [RemovePackageAnalyzer("nose"), Observer()]).run(project, token)
        assert observed[0] == [PackageReference("nose")]
        # Second pass reads the applied declaration, where nose is gone.
        assert observed[1] == []

    def test_analyze_raises_analyzer_error(self, project, token):
        runner = ConvergenceRunner(FakeDeclaration(), [FailingAnalyzer()])
        with pytest.raises(AnalyzerError) as exc_info:
            runner.analyze(project, token)
        assert exc_info.value.analyzer == "failing"

    def test_cancelled_before_start(self, project):
        token = CancellationToken()
        token.cancel()
        decl = FakeDeclaration()
        with pytest.raises(OperationCancelled):
            ConvergenceRunner(decl, [AlwaysAddAnalyzer()]).run(project, token)
        assert decl.loads == 0

    def test_cancellation_from_analyzer_propagates(self, project, token):
        class Cancelling:
            name = "cancelling"

            def analyze(self, project, state, tok):
                tok.cancel()
                tok.raise_if_cancelled()

        with pytest.raises(OperationCancelled):
            ConvergenceRunner(FakeDeclaration(), [Cancelling()]).run(project, token)
