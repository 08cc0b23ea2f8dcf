"""Tests for the pipeline sequencer."""

import pytest

from lakeboot import context as keys
from lakeboot.context import RuntimeContext
from lakeboot.errors import DependencyMissing, ExternalCallFailure, PipelineError, PipelineOrderError
from lakeboot.pipeline import Criticality, Pipeline, Step, StepStatus, validate_steps


def noop(ctx):
    return None


class TestValidation:
    def test_dependency_declared_later_rejected(self):
        steps = [
            Step(id="a", action=noop, depends_on=("b",)),
            Step(id="b", action=noop),
        ]
        with pytest.raises(PipelineOrderError) as exc_info:
            Pipeline(steps)
        assert exc_info.value.step_id == "a"
        assert exc_info.value.dependency == "b"

    def test_unknown_dependency_rejected(self):
        with pytest.raises(PipelineOrderError):
            validate_steps([Step(id="a", action=noop, depends_on=("ghost",))])

    def test_self_dependency_rejected(self):
        with pytest.raises(PipelineOrderError):
            validate_steps([Step(id="a", action=noop, depends_on=("a",))])

    def test_required_key_without_provider(self):
        steps = [Step(id="profile", action=noop, requires=(keys.OBJECT_STORE_ACCESS_KEY,))]
        with pytest.raises(DependencyMissing) as exc_info:
            Pipeline(steps)
        assert exc_info.value.key == keys.OBJECT_STORE_ACCESS_KEY
        assert exc_info.value.step_id == "profile"

    def test_required_key_provided_later_rejected(self):
        steps = [
            Step(id="read", action=noop, requires=(keys.METASTORE_URI,)),
            Step(id="write", action=noop, discover=lambda ctx: {keys.METASTORE_URI: "x"},
                 provides=(keys.METASTORE_URI,)),
        ]
        with pytest.raises(DependencyMissing):
            Pipeline(steps)

    def test_preset_keys_satisfy_requirements(self):
        steps = [Step(id="read", action=noop, requires=(keys.METASTORE_URI,))]
        pipeline = Pipeline(steps, preset_keys=(keys.METASTORE_URI,))
        result = pipeline.run(RuntimeContext({keys.METASTORE_URI: "thrift://h:9083"}))
        assert result.success

    def test_duplicate_ids_rejected(self):
        with pytest.raises(PipelineError):
            Pipeline([Step(id="a", action=noop), Step(id="a", action=noop)])

    def test_provides_without_discover_rejected(self):
        with pytest.raises(PipelineError):
            Pipeline([Step(id="a", action=noop, provides=(keys.CATALOG_URL,))])


class TestRun:
    def test_check_skips_action(self):
        calls = []
        steps = [Step(id="a", action=lambda ctx: calls.append("a"), check=lambda ctx: True)]

        result = Pipeline(steps).run()

        assert result.statuses() == {"a": StepStatus.SKIPPED}
        assert calls == []

    def test_action_report_becomes_metadata(self):
        steps = [Step(id="a", action=lambda ctx: {"created": ["raw"]})]
        result = Pipeline(steps).run()
        assert result.result_for("a").metadata == {"created": ["raw"]}

    def test_discover_runs_on_skipped_steps(self):
        steps = [
            Step(
                id="deploy",
                action=noop,
                check=lambda ctx: True,
                discover=lambda ctx: {keys.OBJECT_STORE_ENDPOINT: "10.0.0.1"},
                provides=(keys.OBJECT_STORE_ENDPOINT,),
            ),
            Step(id="use", action=lambda ctx: {"endpoint": ctx.require(keys.OBJECT_STORE_ENDPOINT)},
                 requires=(keys.OBJECT_STORE_ENDPOINT,)),
        ]

        result = Pipeline(steps).run()

        assert result.success
        assert result.result_for("deploy").status == StepStatus.SKIPPED
        assert result.result_for("deploy").published == [keys.OBJECT_STORE_ENDPOINT]
        assert result.result_for("use").metadata == {"endpoint": "10.0.0.1"}

    def test_critical_failure_stops_and_keeps_earlier_values(self):
        executed = []

        def step(index, fail=False):
            def action(ctx):
                executed.append(index)
                if fail:
                    raise ExternalCallFailure(["helm"], 1, "boom")
            return action

        steps = [
            Step(id="s1", action=step(1), discover=lambda ctx: {keys.OBJECT_STORE_ENDPOINT: "10.0.0.1"},
                 provides=(keys.OBJECT_STORE_ENDPOINT,)),
            Step(id="s2", action=step(2), discover=lambda ctx: {keys.METASTORE_URI: "thrift://m:9083"},
                 provides=(keys.METASTORE_URI,)),
            Step(id="s3", action=step(3, fail=True)),
            Step(id="s4", action=step(4)),
        ]

        result = Pipeline(steps).run()

        assert not result.success
        assert result.aborted_at == "s3"
        assert executed == [1, 2, 3]
        assert result.result_for("s4") is None
        assert result.result_for("s3").error_type == "ExternalCallFailure"
        assert result.context.require(keys.OBJECT_STORE_ENDPOINT) == "10.0.0.1"
        assert result.context.require(keys.METASTORE_URI) == "thrift://m:9083"
        assert "s3" in result.error_message

    def test_advisory_failure_continues(self):
        def fail(ctx):
            raise ExternalCallFailure(["ip"], message="no address")

        steps = [
            Step(id="metallb", action=fail, criticality=Criticality.ADVISORY),
            Step(id="next", action=noop),
        ]

        result = Pipeline(steps).run()

        assert result.success
        assert result.statuses() == {"metallb": StepStatus.FAILED, "next": StepStatus.DONE}
        assert [w.step_id for w in result.warnings] == ["metallb"]

    def test_failing_check_fails_the_step(self):
        def check(ctx):
            raise ExternalCallFailure(["aws"], 255, "could not connect")

        result = Pipeline([Step(id="a", action=noop, check=check)]).run()
        assert result.result_for("a").status == StepStatus.FAILED

    def test_undeclared_output_fails_step(self):
        steps = [
            Step(id="a", action=noop, discover=lambda ctx: {keys.METASTORE_URI: "x", keys.CATALOG_URL: "y"},
                 provides=(keys.METASTORE_URI,)),
        ]
        result = Pipeline(steps).run()
        assert result.aborted_at == "a"
        assert isinstance(result.result_for("a").error, PipelineError)

    def test_missing_declared_output_fails_step(self):
        steps = [Step(id="a", action=noop, discover=lambda ctx: {}, provides=(keys.METASTORE_URI,))]
        result = Pipeline(steps).run()
        assert result.aborted_at == "a"

    def test_on_step_callback(self):
        seen = []
        Pipeline([Step(id="a", action=noop)], on_step=lambda step, res: seen.append((step.id, res.status))).run()
        assert seen == [("a", StepStatus.DONE)]

    def test_to_dict_redacts_secrets(self):
        steps = [
            Step(id="a", action=noop, discover=lambda ctx: {keys.OBJECT_STORE_SECRET_KEY: "abcdefgh"},
                 provides=(keys.OBJECT_STORE_SECRET_KEY,)),
        ]
        data = Pipeline(steps).run().to_dict()
        assert data["context"][keys.OBJECT_STORE_SECRET_KEY] == "abcd****"
        assert data["steps"][0]["status"] == "done"


def test_plan_lists_steps_in_order():
    steps = [
        Step(id="a", action=noop, description="first"),
        Step(id="b", action=noop, depends_on=("a",), criticality=Criticality.ADVISORY),
    ]
    plan = Pipeline(steps).plan()
    assert [entry["id"] for entry in plan] == ["a", "b"]
    assert plan[1]["criticality"] == "advisory"
    assert plan[1]["depends_on"] == ["a"]
