from uuid import uuid4

from dblog_tracker.errors import LogicError
from dblog_tracker.models import (
    ConnectionProperties,
    EntrySnapshot,
    OperationResult,
    PropertyField,
    ResultStatus,
)


def test_210_set_value_by_field():
    """TEST-210: each editable field maps to one property"""
    props = ConnectionProperties()
    props.set_value(PropertyField.SERVER, "db01")
    props.set_value(PropertyField.PORT, "1500")
    props.set_value(PropertyField.DBNAME, "Sales")
    props.set_value(PropertyField.USERNAME, "sa")
    props.set_value(PropertyField.PASSWORD, "pw")

    assert (props.server, props.port, props.database_name, props.user, props.password) == \
        ("db01", "1500", "Sales", "sa", "pw")


def test_211_password_kept_out_of_views():
    """TEST-211: password is excluded from dict and repr"""
    props = ConnectionProperties(server="db01", password="hunter2")

    assert "password" not in props.to_dict()
    assert props.to_dict(include_password=True)["password"] == "hunter2"
    assert "hunter2" not in repr(props)


def test_212_copy_is_independent():
    """TEST-212: copies do not share state"""
    props = ConnectionProperties(server="db01")
    clone = props.copy()
    clone.server = "db02"

    assert props.server == "db01"


def test_213_operation_results():
    """TEST-213: result status and truthiness"""
    assert OperationResult.ok("done")
    assert OperationResult.ok().status == ResultStatus.OK

    failed = OperationResult.failed(LogicError("nope"))
    assert not failed
    assert failed.message == "nope"
    assert isinstance(failed.error, LogicError)

    duplicate = OperationResult.already_tracked("tracked")
    assert not duplicate.success
    assert duplicate.status == ResultStatus.ALREADY_TRACKED
    assert duplicate.error is None


def test_214_snapshot_new_flag():
    """TEST-214: snapshots without a numeric id describe new entries"""
    snapshot = EntrySnapshot(uuid4(), None, "new database", "", "1433", "", "", False, "Track_DB_x")
    assert snapshot.is_new
