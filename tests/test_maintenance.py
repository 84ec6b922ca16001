"""検索履歴メンテナンスCLIのテスト"""

from unittest.mock import AsyncMock, patch

import pytest

from suggestion_service.maintenance import build_parser, main, purge_history


@pytest.mark.unit
class TestMaintenanceCLI:
    """CLI引数・終了コードのテスト"""

    def test_parser_defaults(self):
        args = build_parser().parse_args(["purge"])

        assert args.command == "purge"
        assert args.days is None

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_purge(self, capsys):
        with patch(
            "suggestion_service.maintenance.purge_history",
            new=AsyncMock(return_value=3),
        ) as purge:
            exit_code = main(["purge", "--days", "30", "--database-url", "sqlite://"])

        assert exit_code == 0
        purge.assert_awaited_once_with(30, "sqlite://")
        assert "Deleted 3 search history rows" in capsys.readouterr().out

    def test_purge_rejects_non_positive_days(self, capsys):
        assert main(["purge", "--days", "0"]) == 2
        assert "--days" in capsys.readouterr().err

    def test_purge_failure(self):
        with patch(
            "suggestion_service.maintenance.purge_history",
            new=AsyncMock(side_effect=RuntimeError("database is down")),
        ):
            assert main(["purge"]) == 1


@pytest.mark.integration
class TestPurgeHistory:
    """削除処理のテスト（SQLite使用）"""

    async def test_purge_history(self, database_url, db_engine, add_history):
        await add_history(1, "ancient", days_ago=365)
        await add_history(1, "recent", days_ago=1)

        assert await purge_history(180, database_url) == 1
        assert await purge_history(None, database_url) == 0
