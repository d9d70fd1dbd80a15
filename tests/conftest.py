from collections.abc import Callable, Sequence

import pytest
from ethereum_rpc import Address, BlockHash, LogEntry, LogTopic, TxHash

LogEntryFactory = Callable[[Sequence[LogTopic], bytes], LogEntry]


@pytest.fixture
def make_log_entry() -> LogEntryFactory:
    def _make_log_entry(topics: Sequence[LogTopic], data: bytes) -> LogEntry:
        return LogEntry(
            topics=tuple(topics),
            data=data,
            # these fields do not matter for the tests
            address=Address(b"0" * 20),
            removed=False,
            log_index=0,
            transaction_index=0,
            transaction_hash=TxHash(b"0" * 32),
            block_hash=BlockHash(b"0" * 32),
            block_number=0,
        )

    return _make_log_entry
