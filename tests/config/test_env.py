from __future__ import annotations

import os

import pytest

from payrecon.config import MissingConfigurationError, require_env_var, require_env_vars
from payrecon.config.env import optional_float_env


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_raises_when_any_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_VAR", raising=False)
    monkeypatch.delenv("OTHER_MISSING_VAR", raising=False)

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["OTHER_MISSING_VAR", "MISSING_VAR"])

    assert "MISSING_VAR, OTHER_MISSING_VAR" in str(exc.value)


def test_require_env_var_handles_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "   ")

    with pytest.raises(MissingConfigurationError):
        require_env_var("EXAMPLE_VAR")


def test_require_env_vars_restores_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEMP_VAR", "123")

    assert os.getenv("TEMP_VAR") == "123"
    result = require_env_var("TEMP_VAR")
    assert result == "123"


def test_optional_float_env_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DELAY_SECONDS", raising=False)
    assert optional_float_env("DELAY_SECONDS", 0.08) == 0.08

    monkeypatch.setenv("DELAY_SECONDS", " ")
    assert optional_float_env("DELAY_SECONDS", 0.08) == 0.08

    monkeypatch.setenv("DELAY_SECONDS", "0.25")
    assert optional_float_env("DELAY_SECONDS", 0.08) == 0.25


def test_optional_float_env_rejects_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DELAY_SECONDS", "fast")

    with pytest.raises(MissingConfigurationError, match="DELAY_SECONDS"):
        optional_float_env("DELAY_SECONDS", 0.08)
