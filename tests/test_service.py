"""
Tests for the LedgerService facade: results, diagnostics and admin operations.
"""

from decimal import Decimal

from slotbank.db import open_ledger
from slotbank.errors import NotInitializedError


class TestResults:
    """Tests for how the facade reports outcomes."""

    def test_calls_before_init_fail(self, run, ledger):
        async def scenario():
            return [
                await ledger.create_account("Ana", "ana@example.com", "pw"),
                await ledger.list_accounts(),
                await ledger.apply_transaction("x", "deposit", 1),
                await ledger.verify_all(),
            ]

        results = run(scenario())
        assert all(r.error_code == "not_initialized" for r in results)
        assert all(isinstance(r.error, NotInitializedError) for r in results)

    def test_results_carry_timing(self, run, ledger):
        async def scenario():
            await ledger.init()
            ok = await ledger.list_accounts()
            failed = await ledger.find_account_by_id("missing")
            await ledger.close()
            return ok, failed

        ok, failed = run(scenario())
        assert ok.elapsed_ms >= 0
        assert failed.elapsed_ms >= 0

    def test_unexpected_exception_becomes_internal_error(self, run, ledger, monkeypatch):
        async def explode():
            raise RuntimeError("unexpected")

        async def scenario():
            await ledger.init()
            monkeypatch.setattr(ledger.accounts, "list_all", explode)
            result = await ledger.list_accounts()
            await ledger.close()
            return result

        result = run(scenario())
        assert not result.success
        assert result.error_code == "internal_error"
        assert "unexpected" in str(result.error)

    def test_close_requires_new_init(self, run, ledger):
        async def scenario():
            await ledger.init()
            await ledger.close()
            after_close = await ledger.list_accounts()
            await ledger.init()
            after_init = await ledger.list_accounts()
            await ledger.close()
            return after_close, after_init

        after_close, after_init = run(scenario())
        assert after_close.error_code == "not_initialized"
        assert after_init.success

    def test_backend_name(self, ledger, backend_kind):
        assert ledger.backend_name == backend_kind


class TestAdminOperations:
    """Tests for set_balance_direct and clear_all."""

    def test_set_balance_direct_creates_drift(self, run, ledger):
        async def scenario():
            await ledger.init()
            account = (await ledger.create_account("Ana", "ana@example.com", "pw")).unwrap()
            await ledger.apply_transaction(account.id, "deposit", 10)
            updated = await ledger.set_balance_direct(account.id, "99.90")
            history = (await ledger.list_transactions(account.id)).unwrap()
            report = (await ledger.verify_account(account.id)).unwrap()
            await ledger.close()
            return updated, history, report

        updated, history, report = run(scenario())
        assert updated.value.balance == Decimal("99.90")
        assert len(history) == 1
        assert not report.is_consistent
        assert report.drift == Decimal("89.90")

    def test_set_balance_direct_rejects_negative(self, run, ledger):
        async def scenario():
            await ledger.init()
            account = (await ledger.create_account("Ana", "ana@example.com", "pw")).unwrap()
            result = await ledger.set_balance_direct(account.id, -1)
            await ledger.close()
            return result

        assert run(scenario()).error_code == "invalid_amount"

    def test_set_balance_direct_unknown_account(self, run, ledger):
        async def scenario():
            await ledger.init()
            result = await ledger.set_balance_direct("missing", 5)
            await ledger.close()
            return result

        assert run(scenario()).error_code == "account_not_found"

    def test_clear_all(self, run, ledger):
        async def scenario():
            await ledger.init()
            account = (await ledger.create_account("Ana", "ana@example.com", "pw")).unwrap()
            await ledger.apply_transaction(account.id, "deposit", 10)
            cleared = await ledger.clear_all()
            accounts = (await ledger.list_accounts()).unwrap()
            count = await ledger.backend.query_one(
                "SELECT COUNT(*) AS total FROM transactions"
            )
            recreated = await ledger.create_account("Ana", "ana@example.com", "pw")
            await ledger.close()
            return cleared, accounts, count, recreated

        cleared, accounts, count, recreated = run(scenario())
        assert cleared.success
        assert accounts == []
        assert count["total"] == 0
        assert recreated.success


class TestDiagnostics:
    """Tests for consistency reports and summaries."""

    def test_verify_all_reports_every_account(self, run, ledger):
        async def scenario():
            await ledger.init()
            first = (await ledger.create_account("A", "a@example.com", "pw")).unwrap()
            second = (await ledger.create_account("B", "b@example.com", "pw")).unwrap()
            await ledger.apply_transaction(first.id, "deposit", 30)
            await ledger.apply_transaction(first.id, "bet", 12)
            reports = (await ledger.verify_all()).unwrap()
            await ledger.close()
            return first, second, reports

        first, second, reports = run(scenario())
        by_id = {r.account_id: r for r in reports}
        assert by_id[first.id].derived_balance == Decimal("18.00")
        assert by_id[first.id].transaction_count == 2
        assert by_id[second.id].derived_balance == Decimal("0.00")
        assert by_id[second.id].transaction_count == 0
        assert all(r.is_consistent for r in reports)
        assert by_id[first.id].to_dict()["consistent"] is True

    def test_account_summary(self, run, ledger):
        async def scenario():
            await ledger.init()
            account = (await ledger.create_account("A", "a@example.com", "pw")).unwrap()
            await ledger.apply_transaction(account.id, "deposit", 100)
            await ledger.apply_transaction(account.id, "bet", 20)
            await ledger.apply_transaction(account.id, "bet", 5)
            await ledger.apply_transaction(account.id, "win", "7.50")
            summary = (await ledger.account_summary(account.id)).unwrap()
            await ledger.close()
            return summary

        summary = run(scenario())
        assert summary["bet"] == {"count": 2, "total": Decimal("25.00")}
        assert summary["withdraw"] == {"count": 0, "total": Decimal("0.00")}
        assert summary["credits"] == Decimal("107.50")
        assert summary["debits"] == Decimal("25.00")
        assert summary["net"] == summary["balance"] == Decimal("82.50")
        assert summary["total_transactions"] == 4

    def test_summary_for_unknown_account(self, run, ledger):
        async def scenario():
            await ledger.init()
            result = await ledger.account_summary("missing")
            await ledger.close()
            return result

        assert run(scenario()).error_code == "account_not_found"


class TestOpenLedger:
    """Tests for the configured entry point."""

    def test_open_ledger_uses_arguments(self, run, tmp_path):
        async def scenario():
            ledger = await open_ledger("memory", tmp_path / "wallet.img")
            name = ledger.backend_name
            ready = ledger.is_initialized
            await ledger.close()
            return name, ready

        assert run(scenario()) == ("memory", True)

    def test_open_ledger_reads_environment(self, run, tmp_path, monkeypatch):
        monkeypatch.setenv("SLOTBANK_BACKEND", "native")
        monkeypatch.setenv("SLOTBANK_DB_PATH", str(tmp_path / "env.db"))

        async def scenario():
            ledger = await open_ledger()
            name = ledger.backend_name
            await ledger.close()
            return name

        assert run(scenario()) == "native"
        assert (tmp_path / "env.db").exists()
