from conftest import make_job
from hiresignal.services.post_process import post_process_jobs
from hiresignal.services.store import CreditLedger, SqlJobStore, current_month


class TestSqlJobStore:
    def test_persist_and_reload(self, session_factory):
        store = SqlJobStore(session_factory)
        assert store.get_previous_dedupe_keys() == set()

        jobs = post_process_jobs([make_job(1, company="Acme", title="Dev"), make_job(2, company="Globex")])
        assert store.persist_results(jobs) == 2
        assert store.get_previous_dedupe_keys() == {j.dedupe_key for j in jobs}

    def test_upsert_counts_only_new_keys(self, session_factory):
        store = SqlJobStore(session_factory)
        first = post_process_jobs([make_job(1, company="Acme")])
        second = post_process_jobs([make_job(1, company="Acme"), make_job(2, company="Initech")])
        store.persist_results(first)
        assert store.persist_results(second) == 1

    def test_jobs_without_keys_ignored(self, session_factory):
        assert SqlJobStore(session_factory).persist_results([make_job(1)]) == 0

    def test_previous_keys_flag_next_batch(self, session_factory):
        store = SqlJobStore(session_factory)
        store.persist_results(post_process_jobs([make_job(1, company="Acme", title="Dev")]))
        again = post_process_jobs([make_job(9, company="Acme", title="Dev")], store.get_previous_dedupe_keys())
        assert again[0].is_repeat_hiring is True


class TestCreditLedger:
    def test_records_per_month(self, session_factory):
        ledger = CreditLedger(session_factory)
        ledger.record("icypeas", 15)
        ledger.record("icypeas", 4.5)
        ledger.record("mock", 0)
        ledger.record("icypeas", 100, month="1999-01")
        assert ledger.used_this_month() == 19.5
        assert ledger.used_this_month("1999-01") == 100

    def test_empty_month(self, session_factory):
        assert CreditLedger(session_factory).used_this_month("2000-02") == 0

    def test_current_month_format(self):
        month = current_month()
        assert len(month) == 7 and month[4] == "-"
