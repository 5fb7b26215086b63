from __future__ import annotations

import pytest

from evobreed.foundation.exceptions import (
    InvalidParameterError,
    MissingParameterError,
    SetupError,
    UnknownComponentError,
)
from evobreed.foundation.output import ErrorLog
from evobreed.foundation.parameters import Parameters, push
from evobreed.foundation.registry import Registry


def test_push_joins_dotted_keys():
    assert push("pop", "subpop", 0, "size") == "pop.subpop.0.size"
    assert push(None, "seed") == "seed"
    assert push("breed") == "breed"


def test_nested_mappings_are_flattened():
    params = Parameters({"pop": {"subpops": 2, "subpop.0": {"size": 10}}, "seed": 4})
    assert params.get_int("pop.subpops") == 2
    assert params.get_int("pop.subpop.0.size") == 10
    assert "seed" in params


def test_primary_key_wins_over_fallback():
    params = Parameters({"pop.subpop.0.species.pipe.size": 3, "tournament.size": 7})
    assert params.get_double("pop.subpop.0.species.pipe.size", fallback="tournament.size") == 3.0
    assert params.get_double("other.size", fallback="tournament.size") == 7.0


def test_default_applies_only_when_both_keys_are_missing():
    params = Parameters({"mutate.sigma": "0.3"})
    assert params.get_double("x.sigma", 0.1, "mutate.sigma") == pytest.approx(0.3)
    assert params.get_double("x.sigma", 0.1, "y.sigma") == pytest.approx(0.1)


def test_missing_required_parameter_names_both_keys():
    params = Parameters()
    with pytest.raises(MissingParameterError) as info:
        params.get_int("pop.subpop.0.size", fallback="subpop.size")
    assert "pop.subpop.0.size" in info.value.message
    assert "subpop.size" in info.value.message


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("Yes", True), ("0", False), ("off", False), (True, True)],
)
def test_boolean_spellings(raw, expected):
    assert Parameters({"flag": raw}).get_boolean("flag") is expected


def test_malformed_values_raise_invalid_parameter():
    params = Parameters({"n": "abc", "b": "maybe", "f": 2.5, "t": True})
    with pytest.raises(InvalidParameterError):
        params.get_int("n")
    with pytest.raises(InvalidParameterError):
        params.get_boolean("b")
    with pytest.raises(InvalidParameterError):
        params.get_int("f")
    with pytest.raises(InvalidParameterError):
        params.get_int("t")


def test_range_limits_are_checked():
    params = Parameters({"evalthreads": 0, "likelihood": 1.5})
    with pytest.raises(InvalidParameterError):
        params.get_int("evalthreads", min_value=1)
    with pytest.raises(InvalidParameterError):
        params.get_double("likelihood", max_value=1.0)


def test_registry_is_case_insensitive_and_rejects_duplicates():
    registry: Registry[type] = Registry("widget")
    registry.register("Tournament", dict)
    assert registry.get("TOURNAMENT") is dict
    assert "tournament" in registry
    with pytest.raises(ValueError):
        registry.register("tournament", list)
    registry.register("tournament", list, override=True)
    assert registry["tournament"] is list


def test_registry_decorator_registration():
    registry: Registry[type] = Registry("widget")

    @registry.register("thing")
    class Thing:
        pass

    assert registry.get("thing") is Thing
    assert registry.list() == ["thing"]


def test_unknown_component_suggests_close_name():
    registry: Registry[type] = Registry("breeding source")
    registry.register("tournament", dict)
    with pytest.raises(UnknownComponentError) as info:
        registry.get("tournamnet")
    assert "Did you mean 'tournament'" in (info.value.suggestion or "")


def test_named_instance_uses_registry_and_fallback():
    registry: Registry[type] = Registry("component")
    registry.register("simple", dict)
    params = Parameters({"eval": "simple"})
    assert params.get_named_instance("eval", registry) == {}
    assert params.get_named_instance("missing", registry, default="simple") == {}


def test_error_log_collects_configuration_errors_and_continues():
    log = ErrorLog()
    params = Parameters({"size": -1})
    with log.collect("subpop"):
        params.get_int("size", min_value=1)
        pytest.fail("block should stop at the first configuration error")
    with log.collect("subpop"):
        params.get_int("absent")
    log.error("custom problem", "breed.elite.0")
    assert len(log.errors) == 3
    assert log.errors[0].startswith("[subpop] ")
    assert log.errors[2] == "custom problem (parameter: breed.elite.0)"
    with pytest.raises(SetupError) as info:
        log.exit_if_errors()
    assert info.value.errors == log.errors


def test_error_log_does_not_swallow_other_exceptions():
    log = ErrorLog()
    with pytest.raises(ZeroDivisionError):
        with log.collect("x"):
            1 / 0
    assert not log.has_errors()


def test_warn_once_records_a_single_warning():
    log = ErrorLog()
    for _ in range(3):
        log.warn_once("evaluate() did not set evaluated=True")
    assert log.warnings == ["evaluate() did not set evaluated=True"]
