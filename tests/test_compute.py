"""
Tests for output values and compute functions.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from modelflow.core.compute import ComputeRegistry, ComputeRequest, coerce_outputs, default_compute, import_reference
from modelflow.core.types import Boolean, ListValue, Number, OperationResult, Output, OutputValue, Struct, Text
from modelflow.core.units import ModelGroup, Module, UnitSnapshot, UnitStatus
from modelflow.exceptions import ConfigurationError, TypeMismatchError


class TestOutputValue:
    """The tagged output value union."""

    def test_from_python(self):
        assert OutputValue.from_python(2) == Number(2)
        assert OutputValue.from_python("base") == Text("base")
        assert OutputValue.from_python(False) == Boolean(False)
        assert isinstance(OutputValue.from_python({"a": 1}), Struct)
        assert OutputValue.from_python([1, "x"]) == ListValue((Number(1), Text("x")))

    def test_unsupported_type(self):
        with pytest.raises(TypeMismatchError):
            OutputValue.from_python(object())

    def test_nested_to_python(self):
        value = OutputValue.from_python({"curve": [1.0, 2.0], "label": "base"})
        assert value.to_python() == {"curve": [1.0, 2.0], "label": "base"}

    def test_dict_form(self):
        value = Number(2.5)
        assert value.to_dict() == {"kind": "number", "value": 2.5}
        assert OutputValue.from_dict(value.to_dict()) == value
        struct = OutputValue.from_python({"a": True})
        assert OutputValue.from_dict(struct.to_dict()) == struct

    def test_output_to_dict(self):
        output = Output(name="gdp_growth", value=Number(2.5), unit="%")
        assert output.to_dict() == {"name": "gdp_growth", "value": {"kind": "number", "value": 2.5}, "unit": "%"}

    def test_operation_result(self):
        assert OperationResult.success("done")
        rejected = OperationResult.rejected(ValueError("nope"))
        assert not rejected
        assert rejected.message == "nope"


class TestUnitsFromConfig:
    """Building groups and modules from config entries."""

    def test_group_with_modules(self):
        group = ModelGroup.from_config(
            {
                "id": "econ",
                "name": "Economic Models",
                "breakpoint": True,
                "outputs": ["gdp_growth", {"name": "cpi", "value": 3.1, "unit": "%"}],
                "modules": [{"id": "gdp", "duration": 0.2}, {"id": "cpi", "dependencies": "gdp"}],
            }
        )
        assert group.name == "Economic Models"
        assert group.breakpoint
        assert [o.name for o in group.outputs] == ["gdp_growth", "cpi"]
        assert group.outputs[1].default == Number(3.1)
        assert group.modules[1].dependencies == ["gdp"]
        assert group.modules[1].group_id == "econ"
        assert group.modules[0].duration == 0.2

    def test_non_optional_unit_cannot_start_disabled(self):
        with pytest.raises(ConfigurationError, match="not optional"):
            ModelGroup.from_config({"id": "econ", "optional": False, "enabled": False})

    def test_module_order_must_be_a_list(self):
        with pytest.raises(ConfigurationError, match="module_order"):
            ModelGroup.from_config({"id": "econ", "module_order": "gdp"})

    def test_missing_id(self):
        with pytest.raises(ConfigurationError, match="needs an 'id'"):
            ModelGroup.from_config({"name": "Economic Models"})

    def test_invalid_duration(self):
        with pytest.raises(ConfigurationError, match="invalid duration"):
            Module.from_config({"id": "gdp", "duration": -1}, group_id="econ")

    def test_disabled_unit_starts_disabled(self):
        group = ModelGroup(id="econ", enabled=False)
        assert group.status == UnitStatus.DISABLED
        group.set_enabled(True)
        assert group.status == UnitStatus.IDLE

    def test_snapshot_nests_modules(self):
        group = ModelGroup(id="econ", modules=[Module(id="gdp")])
        snapshot = UnitSnapshot.of(group)
        assert snapshot.modules[0].id == "gdp"


class TestComputeRegistry:
    """Registration, resolution, and invocation."""

    def test_default_compute_returns_declared_values(self):
        request = ComputeRequest(unit_id="econ", name="econ", kind="group", declared={"gdp": 2.5, "cpi": None})
        assert default_compute(request, {}) == {"gdp": 2.5}

    def test_resolution_order(self):
        registry = ComputeRegistry()

        @registry.compute("econ")
        def econ(request, inputs):
            return {}

        assert "econ" in registry
        assert registry.resolve("econ", "json:dumps") is econ
        assert registry.resolve("fin") is default_compute

    def test_import_reference(self):
        fn = import_reference("json:dumps")
        assert fn({"a": 1}) == '{"a": 1}'

    @pytest.mark.parametrize("reference", ["json", "json:", ":dumps", "json:no_such_function"])
    def test_invalid_reference(self, reference):
        with pytest.raises(ConfigurationError):
            import_reference(reference)

    def test_coerce_outputs(self):
        assert coerce_outputs("econ", None) == {}
        assert coerce_outputs("econ", {"gdp": 2}) == {"gdp": Number(2)}
        with pytest.raises(TypeMismatchError, match="must return a mapping"):
            coerce_outputs("econ", [1, 2])

    @pytest.mark.asyncio
    async def test_invoke_sync_in_pool_and_async_on_loop(self):
        registry = ComputeRegistry()
        request = ComputeRequest(unit_id="econ", name="econ", kind="group")

        def sync_fn(request, inputs):
            return {"source": "thread"}

        async def async_fn(request, inputs):
            await asyncio.sleep(0)
            return {"source": "loop"}

        with ThreadPoolExecutor(max_workers=1) as pool:
            assert await registry.invoke(sync_fn, request, {}, pool) == {"source": Text("thread")}
        assert await registry.invoke(async_fn, request, {}) == {"source": Text("loop")}
