from unittest.mock import AsyncMock, patch

from deferred_attribution import cli
from deferred_attribution.models.domain.match_domain import (
    MatchMethod,
    MatchResult,
    OutcomeStatus,
    ResolutionOutcome,
)


def test_main_prints_outcome_and_exit_code(capsys):
    outcome = ResolutionOutcome(
        status=OutcomeStatus.ACCEPTED,
        result=MatchResult(matched=True, method=MatchMethod.REFERRER, deep_link_url="app://x"),
        referrer_attempted=True,
    )

    with (
        patch("deferred_attribution.cli.run_resolution", new=AsyncMock(return_value=outcome)),
        patch("deferred_attribution.cli.setup_logging"),
    ):
        exit_code = cli.main(["--platform", "android", "--referrer", "smartlink_token=abc"])

    assert exit_code == 0
    assert '"deep_link_url": "app://x"' in capsys.readouterr().out


def test_main_returns_nonzero_without_attribution(capsys):
    outcome = ResolutionOutcome(status=OutcomeStatus.NO_MATCH)

    with (
        patch("deferred_attribution.cli.run_resolution", new=AsyncMock(return_value=outcome)),
        patch("deferred_attribution.cli.setup_logging"),
    ):
        exit_code = cli.main(["--platform", "ios"])

    assert exit_code == 1
    assert '"status": "no_match"' in capsys.readouterr().out
