"""Unit tests for the `/keys` handler."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from bitcore.commands.context import CommandServices
from bitcore.commands.types import CommandResult

RunLine = Callable[..., tuple[CommandResult, Any]]


@pytest.mark.unit
def test_keys_set_positional_stores_value(
    run_line: RunLine, services: CommandServices
) -> None:
    """`/keys set <svc> <value>` persists the key on the profile."""
    # Act
    result, capture = run_line("/keys set venice good-venice-key")

    # Assert
    assert result.success
    assert result.data == {"updated": ["venice"]}
    assert services.profile.get_api_key("venice") == "good-venice-key"
    assert capture.outputs == ["Stored API key(s): venice"]


@pytest.mark.unit
def test_keys_set_flags_store_several(
    run_line: RunLine, services: CommandServices
) -> None:
    """Service flags set several keys in one call."""
    # Act
    result, _ = run_line("/keys set --brave=brave-key --github=gh-token")

    # Assert
    assert result.data == {"updated": ["brave", "github"]}
    assert services.profile.get_api_key("brave") == "brave-key"
    assert services.profile.get_api_key("github") == "gh-token"


@pytest.mark.unit
def test_keys_set_without_value_fails_validation(run_line: RunLine) -> None:
    """Missing values are rejected when no prompt is available."""
    # Act
    result, capture = run_line("/keys set venice")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [input_validation]: No value supplied for venice."]
    assert "Hint: Usage: /keys set <service> <value>" in capture.outputs


@pytest.mark.unit
def test_keys_set_asks_hidden_prompt(
    run_line: RunLine, services: CommandServices
) -> None:
    """With a prompt capability the value is requested interactively."""
    # Arrange
    asked: list[tuple[str, bool]] = []

    async def _prompt(text: str, *, hidden: bool = False, timeout: float | None = None) -> str:
        del timeout
        asked.append((text, hidden))
        return "from-prompt"

    # Act
    result, _ = run_line("/keys set brave", ws_prompt=_prompt)

    # Assert
    assert result.success
    assert asked == [("Enter brave API key:", True)]
    assert services.profile.get_api_key("brave") == "from-prompt"


@pytest.mark.unit
def test_keys_check_is_default_action(run_line: RunLine) -> None:
    """Bare `/keys` lists configuration state per service."""
    # Arrange
    run_line("/keys set github gh-token")

    # Act
    result, capture = run_line("/keys")

    # Assert
    assert result.data == {"keys": {"brave": False, "venice": False, "github": True}}
    assert "github: configured" in capture.outputs
    assert "venice: not configured" in capture.outputs


@pytest.mark.unit
def test_keys_rejects_unknown_action(run_line: RunLine) -> None:
    """Leftover positionals on the default action are an input error."""
    # Act
    result, capture = run_line("/keys rotate")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [input_validation]: Unknown /keys action 'rotate'."]


@pytest.mark.unit
def test_keys_test_probes_configured_keys(
    run_line: RunLine, key_probe: Any
) -> None:
    """`/keys test` probes venice and brave and reports failures with tips."""
    # Arrange
    run_line("/keys set venice good-venice")
    run_line("/keys set brave bad-brave")

    # Act
    result, capture = run_line("/keys test")

    # Assert
    assert result.success
    assert key_probe.calls == [("venice", "good-venice"), ("brave", "bad-brave")]
    assert result.data["results"]["venice"]["valid"] is True
    assert result.data["results"]["brave"]["valid"] is False
    assert result.data["apiTestsSucceeded"] is False
    assert any(line.startswith("  Tip:") for line in capture.outputs)


@pytest.mark.unit
def test_keys_test_reports_missing_key(run_line: RunLine) -> None:
    """Explicitly requested services without a key are reported invalid."""
    # Act
    result, _ = run_line("/keys test github --json")

    # Assert
    assert result.data["results"]["github"] == {
        "service": "github",
        "valid": False,
        "detail": "Not configured",
    }


@pytest.mark.unit
def test_keys_test_with_nothing_configured(run_line: RunLine) -> None:
    """No configured keys means nothing to probe."""
    # Act
    result, capture = run_line("/keys test")

    # Assert
    assert result.data == {"results": {}, "apiTestsSucceeded": False}
    assert capture.outputs == ["No API keys configured to test."]


@pytest.mark.unit
def test_keys_test_without_probe_is_server_error(
    run_line: RunLine, services: CommandServices
) -> None:
    """Probing requires a configured probe collaborator."""
    # Arrange
    services.key_probe = None

    # Act
    result, capture = run_line("/keys test")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [server]: Key probing is not configured."]


@pytest.mark.unit
def test_keys_github_updates_target_and_hides_token(
    run_line: RunLine, services: CommandServices
) -> None:
    """`/keys github` persists the sync target and never echoes the token."""
    # Act
    result, capture = run_line(
        "/keys github --owner=acme --repo=research-notes --token=ghp-secret"
    )

    # Assert
    assert result.success
    assert result.data == {
        "github": {
            "owner": "acme",
            "repo": "research-notes",
            "branch": "main",
            "tokenConfigured": True,
        },
        "updated": ["owner", "repo", "token"],
    }
    stored = services.profile.get_github_config()
    assert (stored.owner, stored.repo, stored.token) == ("acme", "research-notes", "ghp-secret")
    assert "Repository: acme/research-notes (branch main)" in capture.outputs
    assert all("ghp-secret" not in str(line) for line in capture.outputs)


@pytest.mark.unit
def test_keys_github_without_flags_shows_config(
    run_line: RunLine, services: CommandServices
) -> None:
    """Showing the config leaves stored values untouched; an empty branch resets to main."""
    # Arrange
    run_line("/keys github --owner=acme --repo=notes --branch=dev")

    # Act
    shown, capture = run_line("/keys github")
    reset, _ = run_line("/keys github --branch=")

    # Assert
    assert shown.data["updated"] == []
    assert shown.data["github"]["branch"] == "dev"
    assert "Token: not configured" in capture.outputs
    assert reset.data["github"]["branch"] == "main"
    assert services.profile.get_github_config().branch == "main"


@pytest.mark.unit
def test_keys_github_rejects_positionals(run_line: RunLine) -> None:
    """The GitHub target is only set through flags."""
    # Act
    result, capture = run_line("/keys github acme/notes")

    # Assert
    assert result.success is False
    assert capture.errors == ["Error [input_validation]: /keys github takes flags only."]


@pytest.mark.unit
def test_status_reports_configured_github_target(run_line: RunLine) -> None:
    """`/status` flags the GitHub target once owner and repo are stored."""
    # Arrange
    run_line("/keys github --owner=acme --repo=notes")

    # Act
    result, capture = run_line("/status")

    # Assert
    assert result.data["status"]["github"] is True
    assert "GitHub target: configured" in capture.outputs
