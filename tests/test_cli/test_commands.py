"""Tests for CLI commands: DealService is mocked, CliRunner used throughout."""

from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner, Result

from src.agent.scanner import ScanSummary
from src.agent.service import InvalidStatusError
from src.config import ConfigError
from src.gmail.client import GmailAuthError
from src.storage.db import DealNotFoundError
from src.storage.models import Deal


# ── Helpers ─────────────────────────────────────────────────────────────────────


def _make_deal(deal_id: str = "0123456789abcdef", status: str = "New") -> Deal:
    return Deal(
        id=deal_id,
        user_id="u1",
        message_id="m1",
        message_ids=["m1"],
        subject="Paid partnership",
        sender="sender@brand.test",
        brand="Glow Recipe",
        compensation="1200",
        deliverables=["2 reels"],
        type="Brand Deal",
        confidence=1.0,
        content_hash="h1",
        source="heuristic",
        status=status,
        created_at="2026-10-01T09:00:00.000Z",
        updated_at="2026-10-01T09:00:00.000Z",
    )


def _make_service() -> MagicMock:
    service = MagicMock()
    service.classifier.name = "heuristic"
    return service


def _invoke(service: MagicMock, *args: str) -> Result:
    from src.cli.main import cli

    runner = CliRunner()
    with patch("src.cli.main.build_service", return_value=service):
        return runner.invoke(cli, list(args), catch_exceptions=False)


# ── Startup ─────────────────────────────────────────────────────────────────────


class TestStartup:
    def test_config_error_is_reported(self) -> None:
        from src.cli.main import cli

        runner = CliRunner()
        with patch(
            "src.cli.main.build_service",
            side_effect=ConfigError("Missing required configuration: GOOGLE_CLIENT_ID"),
        ):
            result = runner.invoke(cli, ["deals", "--user", "u1"])
        assert result.exit_code == 1
        assert "GOOGLE_CLIENT_ID" in result.output

    def test_service_closed_after_command(self) -> None:
        service = _make_service()
        service.list_deals.return_value = []
        _invoke(service, "deals", "--user", "u1")
        service.close.assert_called_once()

    def test_user_from_env(self) -> None:
        from src.cli.main import cli

        service = _make_service()
        service.list_deals.return_value = []
        with patch("src.cli.main.build_service", return_value=service):
            CliRunner().invoke(cli, ["deals"], env={"DEAL_SCANNER_USER": "env-user"})
        assert service.list_deals.call_args.args[0] == "env-user"


# ── scan ────────────────────────────────────────────────────────────────────────


class TestScanCommand:
    def test_prints_summary(self) -> None:
        service = _make_service()
        service.scan = AsyncMock(
            return_value=ScanSummary(
                user_id="u1", total_messages=4, skipped_cached=1, fetched=3, deals_created=2
            )
        )

        result = _invoke(service, "scan", "--user", "u1")

        assert result.exit_code == 0
        service.scan.assert_awaited_once_with("u1")
        assert "Listed 4 message(s)" in result.output
        assert "2 new deal(s)" in result.output

    def test_prints_errors(self) -> None:
        service = _make_service()
        service.scan = AsyncMock(
            return_value=ScanSummary(user_id="u1", total_messages=1, errors=["m1: HTTP 404"])
        )
        result = _invoke(service, "scan", "--user", "u1")
        assert "1 error(s)" in result.output
        assert "m1: HTTP 404" in result.output

    def test_reauth_exits_nonzero(self) -> None:
        service = _make_service()
        service.scan = AsyncMock(side_effect=GmailAuthError())

        result = _invoke(service, "scan", "--user", "u1")

        assert result.exit_code == 1
        assert "sign in again" in result.output


# ── deals ───────────────────────────────────────────────────────────────────────


class TestDealsCommand:
    def test_lists_deals(self) -> None:
        service = _make_service()
        service.list_deals.return_value = [_make_deal()]

        result = _invoke(service, "deals", "--user", "u1")

        assert result.exit_code == 0
        assert "Paid partnership" in result.output
        assert "Glow Recipe" in result.output
        assert "100%" in result.output

    def test_passes_filters(self) -> None:
        service = _make_service()
        service.list_deals.return_value = []

        _invoke(service, "deals", "--user", "u1", "--status", "Booked", "--type", "UGC", "--limit", "5")

        service.list_deals.assert_called_once_with("u1", status="Booked", deal_type="UGC", limit=5)

    def test_empty(self) -> None:
        service = _make_service()
        service.list_deals.return_value = []
        result = _invoke(service, "deals", "--user", "u1")
        assert "No deals found" in result.output

    def test_rejects_unknown_status(self) -> None:
        service = _make_service()
        result = _invoke(service, "deals", "--user", "u1", "--status", "Pending")
        assert result.exit_code == 2
        service.list_deals.assert_not_called()


# ── set-status / delete ─────────────────────────────────────────────────────────


class TestSetStatusCommand:
    def test_updates(self) -> None:
        service = _make_service()
        service.update_status.return_value = _make_deal(status="In Progress")

        result = _invoke(service, "set-status", "--user", "u1", "0123456789abcdef", "In Progress")

        assert result.exit_code == 0
        service.update_status.assert_called_once_with("u1", "0123456789abcdef", "In Progress")
        assert "is now In Progress" in result.output

    def test_invalid_status(self) -> None:
        service = _make_service()
        service.update_status.side_effect = InvalidStatusError("Invalid status 'Pending'")
        result = _invoke(service, "set-status", "--user", "u1", "d1", "Pending")
        assert result.exit_code == 2

    def test_not_found(self) -> None:
        service = _make_service()
        service.update_status.side_effect = DealNotFoundError("d1")
        result = _invoke(service, "set-status", "--user", "u1", "d1", "Booked")
        assert result.exit_code == 1
        assert "not found" in result.output


class TestDeleteCommand:
    def test_deletes(self) -> None:
        service = _make_service()
        result = _invoke(service, "delete", "--user", "u1", "d1")
        assert result.exit_code == 0
        service.delete_deal.assert_called_once_with("u1", "d1")
        assert "Deleted deal d1" in result.output

    def test_not_found(self) -> None:
        service = _make_service()
        service.delete_deal.side_effect = DealNotFoundError("d1")
        result = _invoke(service, "delete", "--user", "u1", "d1")
        assert result.exit_code == 1


# ── store-token / clear-cache ───────────────────────────────────────────────────


class TestTokenAndCacheCommands:
    def test_store_token(self) -> None:
        service = _make_service()
        result = _invoke(
            service, "store-token", "--user", "u1", "--access-token", "a1", "--refresh-token", "r1"
        )
        assert result.exit_code == 0
        service.store_tokens.assert_called_once_with("u1", "a1", "r1")

    def test_clear_cache(self) -> None:
        service = _make_service()
        service.clear_scan_cache.return_value = 3
        result = _invoke(service, "clear-cache", "--user", "u1")
        assert "Cleared 3 scan marker(s)" in result.output
