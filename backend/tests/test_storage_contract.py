"""两个存储后端跑同一套契约测试（行为必须完全一致）。"""
from __future__ import annotations

import asyncio
import sys
import unittest
from pathlib import Path
from typing_extensions import override

sys.path.insert(0, str(Path(__file__).resolve().parent))

from helpers import make_document_backend, make_sql_backend

from daycount.storage import CounterRow, HourSum, StorageBackend
from daycount.utils.errors import StorageError


class _Boom(Exception):
    pass


class _StorageContract:
    backend: StorageBackend

    def make_backend(self) -> StorageBackend:
        raise NotImplementedError

    @override
    async def asyncSetUp(self):
        self.backend = self.make_backend()
        await self.backend.open()

        async def _schema(tx):
            await tx.ensure_schema()

        await self.backend.run_transaction(_schema)

    @override
    async def asyncTearDown(self):
        await self.backend.close()

    async def _tx(self, fn):
        return await self.backend.run_transaction(fn)

    async def _list(self) -> list[CounterRow]:
        async def _work(tx):
            return await tx.list_counters()

        return await self.backend.run_query(_work)

    async def test_ensure_counter_is_idempotent_and_never_overwrites(self):
        async def _work(tx):
            await tx.ensure_counter("2026-10-19")
            await tx.increment_counter("2026-10-19", 4)
            await tx.ensure_counter("2026-10-19")
            return await tx.get_counter("2026-10-19")

        row = await self._tx(_work)
        self.assertEqual(row, CounterRow("2026-10-19", 4))
        self.assertEqual(await self._list(), [CounterRow("2026-10-19", 4)])

    async def test_increment_reports_rows_affected(self):
        async def _work(tx):
            missing = await tx.increment_counter("2026-10-19", 2)
            await tx.ensure_counter("2026-10-19")
            present = await tx.increment_counter("2026-10-19", 2)
            return missing, present

        self.assertEqual(await self._tx(_work), (0, 1))

    async def test_insert_fallback_and_duplicate_insert(self):
        async def _insert(tx):
            await tx.insert_counter("2026-10-19", 3)

        await self._tx(_insert)

        with self.assertRaises(StorageError):
            await self._tx(_insert)

        self.assertEqual(await self._list(), [CounterRow("2026-10-19", 3)])

    async def test_set_counter(self):
        async def _work(tx):
            missing = await tx.set_counter("2026-10-19", 0)
            await tx.insert_counter("2026-10-19", 9)
            present = await tx.set_counter("2026-10-19", 0)
            return missing, present, await tx.get_counter("2026-10-19")

        self.assertEqual(await self._tx(_work), (0, 1, CounterRow("2026-10-19", 0)))

    async def test_get_counter_missing_returns_none(self):
        async def _work(tx):
            return await tx.get_counter("1999-01-01")

        self.assertIsNone(await self.backend.run_query(_work))

    async def test_list_counters_is_sorted_ascending(self):
        async def _work(tx):
            for d in ("2026-10-19", "2025-12-31", "2026-01-02", "2026-01-10"):
                await tx.ensure_counter(d)

        await self._tx(_work)
        dates = [r.date for r in await self._list()]
        self.assertEqual(dates, ["2025-12-31", "2026-01-02", "2026-01-10", "2026-10-19"])

    async def test_append_increment_ids_are_monotonic(self):
        async def _work(tx):
            return [
                await tx.append_increment("2026-10-19", 9, "2026-10-19T01:00:00.000+00:00", 1),
                await tx.append_increment("2026-10-19", 9, "2026-10-19T01:00:01.000+00:00", 2),
                await tx.append_increment("2026-10-20", 0, "2026-10-19T16:00:00.000+00:00", 3),
            ]

        ids = await self._tx(_work)
        self.assertEqual(ids, sorted(ids))
        self.assertEqual(len(set(ids)), 3)

    async def test_hour_sums_groups_by_hour_for_one_date(self):
        async def _work(tx):
            await tx.append_increment("2026-10-19", 14, "t1", 5)
            await tx.append_increment("2026-10-19", 9, "t2", 1)
            await tx.append_increment("2026-10-19", 14, "t3", 2)
            await tx.append_increment("2026-10-18", 14, "t4", 100)

        await self._tx(_work)

        async def _sums(tx):
            return await tx.hour_sums("2026-10-19")

        self.assertEqual(
            await self.backend.run_query(_sums),
            [HourSum(9, 1), HourSum(14, 7)],
        )

    async def test_failed_transaction_leaves_prior_state_intact(self):
        async def _seed(tx):
            await tx.insert_counter("2026-10-19", 1)

        await self._tx(_seed)

        async def _work(tx):
            await tx.increment_counter("2026-10-19", 10)
            await tx.ensure_counter("2026-10-20")
            await tx.append_increment("2026-10-19", 3, "t", 10)
            raise _Boom()

        with self.assertRaises(_Boom):
            await self._tx(_work)

        self.assertEqual(await self._list(), [CounterRow("2026-10-19", 1)])

        async def _sums(tx):
            return await tx.hour_sums("2026-10-19")

        self.assertEqual(await self.backend.run_query(_sums), [])

    async def test_read_only_transaction_rejects_writes(self):
        async def _work(tx):
            await tx.ensure_counter("2026-10-19")

        with self.assertRaises(StorageError):
            await self.backend.run_query(_work)
        self.assertEqual(await self._list(), [])

    async def test_concurrent_transactions_are_serialized(self):
        async def _init(tx):
            await tx.ensure_counter("2026-10-19")

        await self._tx(_init)

        async def _bump(tx):
            row = await tx.get_counter("2026-10-19")
            # 读-改-写中间让出事件循环：没有串行化就会丢失更新
            await asyncio.sleep(0)
            await tx.set_counter("2026-10-19", row.count + 1)

        await asyncio.gather(*[self._tx(_bump) for _ in range(20)])
        self.assertEqual(await self._list(), [CounterRow("2026-10-19", 20)])

    async def test_reads_during_writes_only_see_applied_state(self):
        async def _init(tx):
            await tx.ensure_counter("2026-10-19")

        await self._tx(_init)

        async def _increment(tx):
            await tx.increment_counter("2026-10-19", 1)
            # 计数已加、日志未写：此刻的读不能看到半个事务
            await asyncio.sleep(0)
            await tx.append_increment("2026-10-19", 10, "2026-10-19T02:00:00.000Z", 1)

        async def _snapshot(tx):
            row = await tx.get_counter("2026-10-19")
            await asyncio.sleep(0)
            sums = await tx.hour_sums("2026-10-19")
            return row.count, sum(s.total for s in sums)

        jobs = []
        for _ in range(30):
            jobs.append(self._tx(_increment))
            jobs.append(self.backend.run_query(_snapshot))
        results = await asyncio.gather(*jobs)

        for count, logged in results[1::2]:
            self.assertEqual(count, logged)
        self.assertEqual(await self.backend.run_query(_snapshot), (30, 30))


class _UninitializedContract:
    backend: StorageBackend

    def make_backend(self) -> StorageBackend:
        raise NotImplementedError

    @override
    async def asyncSetUp(self):
        self.backend = self.make_backend()
        await self.backend.open()

    @override
    async def asyncTearDown(self):
        await self.backend.close()

    async def test_primitives_fail_before_schema_exists(self):
        async def _work(tx):
            await tx.ensure_counter("2026-10-19")

        with self.assertRaises(StorageError):
            await self.backend.run_transaction(_work)

        async def _read(tx):
            return await tx.list_counters()

        with self.assertRaises(StorageError):
            await self.backend.run_query(_read)


class SqlStorageContractTests(_StorageContract, unittest.IsolatedAsyncioTestCase):
    @override
    def make_backend(self) -> StorageBackend:
        return make_sql_backend()


class DocumentStorageContractTests(_StorageContract, unittest.IsolatedAsyncioTestCase):
    @override
    def make_backend(self) -> StorageBackend:
        return make_document_backend()


class SqlUninitializedTests(_UninitializedContract, unittest.IsolatedAsyncioTestCase):
    @override
    def make_backend(self) -> StorageBackend:
        return make_sql_backend()


class DocumentUninitializedTests(_UninitializedContract, unittest.IsolatedAsyncioTestCase):
    @override
    def make_backend(self) -> StorageBackend:
        return make_document_backend()


if __name__ == "__main__":
    unittest.main()
