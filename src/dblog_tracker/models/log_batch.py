"""
Transaction log data model

Rows read from a tracked database's transaction log, grouped per
transaction in the order the server returned them.
"""

from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple

# fn_dblog reports times as '2020/08/04 10:15:30:123'
_LOG_TIME_FORMATS = (
    "%Y/%m/%d %H:%M:%S:%f",
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
)


def parse_log_time(value: Any) -> Optional[datetime]:
    """Convert a log time value to datetime; unparseable or empty gives None."""
    if value is None or isinstance(value, datetime):
        return value

    text = str(value).strip()
    if not text:
        return None

    for fmt in _LOG_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class LogRecord:
    """
    One transaction log row.

    Attributes:
        object_name: affected object (allocation unit name)
        operation: log operation, e.g. LOP_INSERT_ROWS
        transaction_name: name of the enclosing transaction
        transaction_id: log transaction id, the grouping key
        begin_time: transaction begin time
        end_time: transaction commit time (None while still open)
        description: free-text description from the log
        user: login that started the transaction
        lsn: LSN of this row
    """
    object_name: str
    operation: str
    transaction_name: str
    transaction_id: str
    begin_time: Optional[datetime]
    end_time: Optional[datetime]
    description: str
    user: str
    lsn: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'LogRecord':
        """Build from a result row; columns missing from the row were NULL."""
        return cls(
            object_name=str(row.get('ObjectName', '')),
            operation=str(row.get('Operation', '')),
            transaction_name=str(row.get('TransactionName', '')),
            transaction_id=str(row.get('TransactionID', '')),
            begin_time=parse_log_time(row.get('BeginTime')),
            end_time=parse_log_time(row.get('EndTime')),
            description=str(row.get('Description', '')),
            user=str(row.get('UserName', '')),
            lsn=str(row.get('CurrentLSN', '')),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TransactionSummary:
    """The row written into a log table for one transaction."""
    transaction_id: str
    begin_time: Optional[datetime]
    end_time: Optional[datetime]
    user: str
    object_name: str
    operation: str
    begin_lsn: str
    end_lsn: str

    @classmethod
    def from_records(cls, transaction_id: str, records: List[LogRecord]) -> 'TransactionSummary':
        if not records:
            raise ValueError(f"Transaction {transaction_id} has no log records")

        begin_times = [r.begin_time for r in records if r.begin_time is not None]
        end_times = [r.end_time for r in records if r.end_time is not None]
        users = [r.user for r in records if r.user]
        # First row touching a real object describes the transaction best
        touched = next((r for r in records if r.object_name), records[0])

        return cls(
            transaction_id=transaction_id,
            begin_time=min(begin_times) if begin_times else None,
            end_time=max(end_times) if end_times else None,
            user=users[0] if users else '',
            object_name=touched.object_name,
            operation=touched.operation,
            begin_lsn=records[0].lsn,
            end_lsn=records[-1].lsn,
        )


class LogBatch:
    """
    Log records grouped by transaction id.

    Groups keep the order in which their first record was retrieved, and
    records keep retrieval order inside each group.
    """

    def __init__(self, records: Optional[Iterable[LogRecord]] = None):
        self._transactions: "OrderedDict[str, List[LogRecord]]" = OrderedDict()
        for record in records or ():
            self.add(record)

    def add(self, record: LogRecord) -> None:
        self._transactions.setdefault(record.transaction_id, []).append(record)

    def clear(self) -> None:
        self._transactions.clear()

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self._transactions.values())

    def transaction_ids(self) -> List[str]:
        return list(self._transactions)

    def items(self) -> Iterator[Tuple[str, Tuple[LogRecord, ...]]]:
        for transaction_id, records in self._transactions.items():
            yield transaction_id, tuple(records)

    def summaries(self) -> List[TransactionSummary]:
        return [
            TransactionSummary.from_records(transaction_id, records)
            for transaction_id, records in self._transactions.items()
        ]

    def as_mapping(self) -> Mapping[str, Tuple[LogRecord, ...]]:
        """Read-only snapshot for callers outside the core."""
        return MappingProxyType(OrderedDict(self.items()))

    def to_dataframe(self):
        """All records as a pandas DataFrame, one row per log record."""
        import pandas as pd

        columns = list(LogRecord.__dataclass_fields__)
        rows = [record.to_dict() for _, records in self.items() for record in records]
        return pd.DataFrame(rows, columns=columns)

    def __len__(self) -> int:
        return len(self._transactions)

    def __iter__(self) -> Iterator[str]:
        return iter(self._transactions)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._transactions

    def __getitem__(self, transaction_id: str) -> Tuple[LogRecord, ...]:
        return tuple(self._transactions[transaction_id])

    def __bool__(self) -> bool:
        return bool(self._transactions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LogBatch):
            return NotImplemented
        return list(self.items()) == list(other.items())

    def __repr__(self) -> str:
        return f"LogBatch(transactions={len(self)}, records={self.record_count})"

