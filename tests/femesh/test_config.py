from __future__ import annotations

import logging

import pytest

from femesh.config import (
    Parameters,
    bool_env,
    config,
    configure,
    float_env,
    int_env,
    parameters,
    set_log_level,
    use,
)


def test_bool_env_and_int_env_roundtrip(monkeypatch):
    monkeypatch.setenv("TBOOL", "true")
    assert bool_env("TBOOL", False) is True
    monkeypatch.setenv("TBOOL", "0")
    assert bool_env("TBOOL", True) is False
    monkeypatch.setenv("TINT", "42")
    assert int_env("TINT", 0) == 42
    monkeypatch.setenv("TFLOAT", "1e-3")
    assert float_env("TFLOAT", 0.0) == pytest.approx(1e-3)


def test_env_defaults_when_unset(monkeypatch):
    monkeypatch.delenv("TUNSET", raising=False)
    assert bool_env("TUNSET", True) is True
    assert int_env("TUNSET", 7) == 7
    assert float_env("TUNSET", 0.5) == 0.5


def test_bool_env_rejects_garbage(monkeypatch):
    monkeypatch.setenv("TBOOL", "maybe")
    with pytest.raises(ValueError):
        bool_env("TBOOL", False)
    monkeypatch.setenv("TBOOL", " On ")
    assert bool_env("TBOOL", False) is True


def test_use_context_restores_parameters():
    prev = config.parameters
    with use(eps=1e-10, order_on_close=False) as p:
        assert p.eps == 1e-10
        assert config.eps == 1e-10
        assert config.order_on_close is False
    assert config.parameters == prev


def test_use_restores_on_error():
    prev = config.parameters
    with pytest.raises(RuntimeError):
        with use(cell_size=0.5):
            raise RuntimeError("boom")
    assert config.parameters == prev


def test_configure_rejects_unknown_parameter():
    with pytest.raises(ValueError):
        configure(not_a_parameter=1)


def test_configure_updates_and_chains():
    prev = config.parameters
    try:
        assert configure(mesh_resolution=8) is config
        assert config.mesh_resolution == 8
        assert parameters()["mesh_resolution"] == 8
    finally:
        configure(**{k: getattr(prev, k) for k in parameters()})
    assert config.parameters == prev


def test_parameters_returns_a_copy():
    p = parameters()
    assert set(p) == {"eps", "order_on_close", "mesh_resolution", "triangle_shape_bound", "cell_size"}
    p["eps"] = 1.0
    assert config.eps != 1.0


def test_parameters_dataclass_defaults():
    p = Parameters()
    assert p.eps == 3.0e-16
    assert p.order_on_close is True
    assert p.mesh_resolution == 64
    assert p.triangle_shape_bound == 0.125
    assert p.cell_size == 0.25


def test_set_log_level():
    logger = logging.getLogger("femesh")
    prev = logger.level
    try:
        set_log_level("DEBUG")
        assert logger.level == logging.DEBUG
        set_log_level(logging.ERROR)
        assert logger.level == logging.ERROR
        set_log_level("not-a-level")
        assert logger.level == logging.WARNING
    finally:
        logger.setLevel(prev)
